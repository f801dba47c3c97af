"""Session lookup for the booking API.

Sessions are issued by the account service and shared through Valkey under
session:<token>. This side only reads them, slides their expiry on use and
drops the ones that have outlived it. A session carries the roles the user
signed in with; booking ownership is checked separately against each booking.
"""

from datetime import timedelta
from uuid import UUID

from clients.valkey_client import ValkeyClient
from auth.config import AuthConfig
from auth.types import Session
from auth.exceptions import SessionExpiredError
from core.models import Role
from utils.timezone import now_utc, parse_iso


class SessionManager:
    """Resolves session cookies to sessions. Every successful lookup pushes expiry forward."""

    KEY_PREFIX = "session:"

    def __init__(self, valkey: ValkeyClient, config: AuthConfig):
        self._valkey = valkey
        self._expiry = timedelta(hours=config.session_expiry_hours)

    def _key(self, token: str) -> str:
        return f"{self.KEY_PREFIX}{token}"

    def _load(self, token: str) -> Session | None:
        data = self._valkey.get_json(self._key(token))
        if data is None:
            return None
        return Session(
            token=token,
            user_id=UUID(data["user_id"]),
            # Sessions written before roles were recorded carry none
            roles=frozenset(Role(value) for value in data.get("roles", [])),
            created_at=parse_iso(data["created_at"]),
            expires_at=parse_iso(data["expires_at"]),
            last_activity_at=parse_iso(data["last_activity_at"]),
        )

    def _store(self, session: Session) -> None:
        self._valkey.set_json(
            self._key(session.token),
            {
                "user_id": str(session.user_id),
                "roles": sorted(role.value for role in session.roles),
                "created_at": session.created_at.isoformat(),
                "expires_at": session.expires_at.isoformat(),
                "last_activity_at": session.last_activity_at.isoformat(),
            },
            expire_seconds=int(self._expiry.total_seconds()),
        )

    def validate_session(self, token: str) -> Session:
        """Look up a session token and extend it.

        Raises:
            SessionExpiredError: If the token is unknown or past its expiry.
        """
        session = self._load(token)
        if session is None:
            raise SessionExpiredError("Session not found or expired")

        now = now_utc()

        # Valkey's TTL normally gets there first
        if now > session.expires_at:
            self._valkey.delete(self._key(token))
            raise SessionExpiredError("Session expired")

        extended = session.model_copy(update={
            "expires_at": now + self._expiry,
            "last_activity_at": now,
        })
        self._store(extended)
        return extended
