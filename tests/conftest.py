"""Shared test fixtures for the booking service test suite.

Core tests run against in-memory fakes (tests/fakes.py); no database,
Valkey or Vault is needed. Ports with side effects (notifications, payment
gateway, audit log) are Mock(spec=...) so tests can assert on calls.
"""

from unittest.mock import Mock

import pytest

from clients.payment_client import PaymentGatewayClient
from core.audit import AuditLogger
from core.bootstrap import build_services
from core.config import BookingConfig
from core.models import Actor, Role
from core.notifications import NotificationDispatcher, NotificationService
from tests.fakes import (
    ADMIN_ID, CLIENT_ID, PROVIDER_ID, STRANGER_ID,
    FakeBookingRepository, FixedClock,
)
from utils.actor_context import clear_current_actor


# =============================================================================
# ACTOR CONTEXT
# =============================================================================


@pytest.fixture(autouse=True)
def reset_actor_context():
    """Ensure clean actor context before and after each test."""
    clear_current_actor()
    yield
    clear_current_actor()


# =============================================================================
# ACTORS
# =============================================================================


@pytest.fixture
def client_actor() -> Actor:
    """The booking's client."""
    return Actor(id=CLIENT_ID, roles=frozenset({Role.CLIENT}))


@pytest.fixture
def provider_actor() -> Actor:
    """The booking's provider."""
    return Actor(id=PROVIDER_ID, roles=frozenset({Role.PROVIDER}))


@pytest.fixture
def admin_actor() -> Actor:
    return Actor(id=ADMIN_ID, roles=frozenset({Role.ADMIN}))


@pytest.fixture
def stranger_actor() -> Actor:
    """A client and provider with no relation to the seeded bookings."""
    return Actor(id=STRANGER_ID, roles=frozenset({Role.CLIENT, Role.PROVIDER}))


# =============================================================================
# PORTS AND SERVICES
# =============================================================================


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def config() -> BookingConfig:
    return BookingConfig()


@pytest.fixture
def repository() -> FakeBookingRepository:
    return FakeBookingRepository()


@pytest.fixture
def audit():
    return Mock(spec=AuditLogger)


@pytest.fixture
def notifier():
    return Mock(spec=NotificationService)


@pytest.fixture
def payments():
    mock = Mock(spec=PaymentGatewayClient)
    mock.charge.return_value = "ch_test_1"
    mock.refund.return_value = "rf_test_1"
    return mock


@pytest.fixture
def booking_services(repository, audit, notifier, payments, config, clock):
    """Fully wired services with handlers subscribed."""
    return build_services(
        repository, audit, notifier, payments, config,
        Mock(spec=NotificationDispatcher), clock,
    )


@pytest.fixture
def state_machine(booking_services):
    return booking_services.state_machine


@pytest.fixture
def confirmation(booking_services):
    return booking_services.confirmation


@pytest.fixture
def payment_service(booking_services):
    return booking_services.payment
