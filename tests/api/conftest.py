"""API test fixtures: the real app around in-memory booking services."""

from datetime import timedelta
from unittest.mock import Mock

import pytest
from starlette.testclient import TestClient

from api.app import create_app
from auth.config import AuthConfig
from auth.rate_limiter import MutationRateLimiter
from auth.session import SessionManager
from auth.types import Session
from core.models import Role
from tests.fakes import ADMIN_ID, CLIENT_ID, PROVIDER_ID, FakeValkey
from utils.timezone import now_utc

TOKENS = {
    "client-token": (CLIENT_ID, {Role.CLIENT}),
    "provider-token": (PROVIDER_ID, {Role.PROVIDER}),
    "admin-token": (ADMIN_ID, {Role.ADMIN}),
}


@pytest.fixture
def mock_session_manager():
    """Resolves each fixed token to its party."""
    def validate(token):
        user_id, roles = TOKENS[token]
        now = now_utc()
        return Session(
            token=token,
            user_id=user_id,
            roles=frozenset(roles),
            created_at=now,
            expires_at=now + timedelta(hours=24),
            last_activity_at=now,
        )

    mock = Mock(spec=SessionManager)
    mock.validate_session.side_effect = validate
    return mock


@pytest.fixture
def rate_limiter():
    return MutationRateLimiter(
        FakeValkey(), AuthConfig(mutation_rate_limit_attempts=5, mutation_rate_limit_window_seconds=60)
    )


@pytest.fixture
def app(booking_services, mock_session_manager, rate_limiter):
    return create_app(booking_services, mock_session_manager, rate_limiter)


def _client(app, token=None) -> TestClient:
    c = TestClient(app, raise_server_exceptions=False)
    if token:
        c.cookies.set("session_token", token)
    return c


@pytest.fixture
def as_client(app):
    return _client(app, "client-token")


@pytest.fixture
def as_provider(app):
    return _client(app, "provider-token")


@pytest.fixture
def as_admin(app):
    return _client(app, "admin-token")


@pytest.fixture
def unauthed_client(app):
    return _client(app)
