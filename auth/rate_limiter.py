"""Rate limiting for booking mutations.

Uses Valkey counters keyed by actor id. The window starts at an actor's first
mutation and the counter expires with it.
"""

from uuid import UUID

from clients.valkey_client import ValkeyClient
from auth.config import AuthConfig
from auth.exceptions import RateLimitedError


class MutationRateLimiter:
    """Per-actor limit on booking mutations using Valkey."""

    KEY_PREFIX = "ratelimit:booking_mutation:"

    def __init__(self, valkey: ValkeyClient, config: AuthConfig):
        self._valkey = valkey
        self._config = config
        self._window_seconds = config.mutation_rate_limit_window_seconds

    def _key(self, actor_id: UUID) -> str:
        return f"{self.KEY_PREFIX}{actor_id}"

    def check(self, actor_id: UUID) -> None:
        """Count one mutation and enforce the limit.

        Raises:
            RateLimitedError: If the actor is over the limit for this window.
        """
        key = self._key(actor_id)

        count = self._valkey.incr(key)
        if count == 1:
            self._valkey.expire(key, self._window_seconds)

        if count > self._config.mutation_rate_limit_attempts:
            ttl = self._valkey.ttl(key)
            if ttl < 0:
                # Counter lost its TTL; start a fresh window
                self._valkey.expire(key, self._window_seconds)
                ttl = self._window_seconds
            raise RateLimitedError(retry_after_seconds=max(ttl, 1))

