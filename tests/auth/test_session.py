"""Tests for SessionManager - session lookup and sliding expiry."""

from datetime import timedelta
from uuid import uuid4

import pytest

from auth.config import AuthConfig
from auth.exceptions import SessionExpiredError
from auth.session import SessionManager
from core.models import Role
from tests.fakes import CLIENT_ID, PROVIDER_ID, FakeValkey
from utils.timezone import now_utc, parse_iso


@pytest.fixture
def valkey():
    return FakeValkey()


@pytest.fixture
def session_manager(valkey):
    return SessionManager(valkey, AuthConfig(session_expiry_hours=1))


def _issue(valkey, token, user_id, roles=("client",), age=timedelta(0)):
    """Write a session the way the account service does."""
    created = now_utc() - age
    valkey.set_json(f"session:{token}", {
        "user_id": str(user_id),
        "roles": list(roles),
        "created_at": created.isoformat(),
        "expires_at": (created + timedelta(hours=1)).isoformat(),
        "last_activity_at": created.isoformat(),
    })


class TestValidateSession:

    def test_roles_become_actor(self, session_manager, valkey):
        _issue(valkey, "abc", PROVIDER_ID, roles=("provider", "admin"))

        actor = session_manager.validate_session("abc").actor

        assert actor.id == PROVIDER_ID
        assert actor.roles == frozenset({Role.PROVIDER, Role.ADMIN})

    def test_unknown_token_raises(self, session_manager):
        with pytest.raises(SessionExpiredError, match="not found"):
            session_manager.validate_session("nonexistent-token")

    def test_expired_session_deleted(self, session_manager, valkey):
        _issue(valkey, "old", uuid4(), age=timedelta(hours=2))

        with pytest.raises(SessionExpiredError, match="expired"):
            session_manager.validate_session("old")

        assert valkey.get("session:old") is None

    def test_validation_slides_expiry(self, session_manager, valkey):
        _issue(valkey, "abc", CLIENT_ID, age=timedelta(minutes=50))
        issued = valkey.get_json("session:abc")

        validated = session_manager.validate_session("abc")

        assert validated.expires_at > parse_iso(issued["expires_at"])
        assert validated.created_at == parse_iso(issued["created_at"])

    def test_extension_written_back_with_ttl(self, session_manager, valkey):
        _issue(valkey, "abc", CLIENT_ID, roles=("provider", "client"))

        session_manager.validate_session("abc")

        assert valkey.ttls["session:abc"] == 3600
        assert valkey.get_json("session:abc")["roles"] == ["client", "provider"]

    def test_legacy_session_without_roles(self, session_manager, valkey):
        now = now_utc()
        valkey.set_json("session:legacy", {
            "user_id": str(CLIENT_ID),
            "created_at": now.isoformat(),
            "expires_at": (now + timedelta(hours=1)).isoformat(),
            "last_activity_at": now.isoformat(),
        })

        assert session_manager.validate_session("legacy").roles == frozenset()
