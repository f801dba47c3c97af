"""
Valkey access for the API's short-lived state.

Two kinds of keys live here: session documents (JSON, expiring with the
session) and per-actor mutation counters (integers, expiring with the rate
limit window). The client is a thin layer over redis-py, which speaks the
Valkey protocol unchanged. Connection errors propagate; a missing key is
reported as None rather than raised.
"""

import json
import logging

import redis

logger = logging.getLogger(__name__)


class ValkeyClient:
    """
    String, counter and JSON operations on one Valkey database.

    Usage:
        client = ValkeyClient("redis://localhost:6379/0")
        client.set_json("session:abc", {"user_id": "..."}, expire_seconds=300)
        count = client.incr("ratelimit:booking_mutation:<actor id>")
    """

    def __init__(self, url: str):
        """
        Connect and ping once, so a bad URL from Vault fails at startup.

        Raises:
            redis.ConnectionError: If Valkey is unreachable
        """
        self._client = redis.from_url(url, decode_responses=True)
        self._client.ping()
        logger.info("ValkeyClient connected")

    # Strings

    def get(self, key: str) -> str | None:
        return self._client.get(key)

    def set(self, key: str, value: str, expire_seconds: int | None = None) -> None:
        """Store value, replacing any previous TTL. No expiry when expire_seconds is None."""
        self._client.set(key, value, ex=expire_seconds)

    def delete(self, key: str) -> bool:
        """True if the key existed."""
        return self._client.delete(key) > 0

    # Counters and expiry

    def incr(self, key: str) -> int:
        """Atomically add one, starting from zero for a missing key."""
        return self._client.incr(key)

    def expire(self, key: str, seconds: int) -> bool:
        """False if the key doesn't exist."""
        return bool(self._client.expire(key, seconds))

    def ttl(self, key: str) -> int:
        """Seconds left; -1 for a key without expiry, -2 for a missing key."""
        return self._client.ttl(key)

    # JSON documents

    def set_json(self, key: str, value: dict | list, expire_seconds: int | None = None) -> None:
        self.set(key, json.dumps(value), expire_seconds)

    def get_json(self, key: str) -> dict | list | None:
        """
        Load a document written by set_json.

        Raises:
            ValueError: If the stored value is not JSON
        """
        raw = self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in key '{key}': {e}") from e
