"""
Assembly of the booking services.

build_services() wires already-constructed clients together and is what
tests use. connect() reads the environment (.env, then Vault) and builds the
real clients; the API app and the confirmation sweeper both start there.
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable

from dotenv import load_dotenv

from clients.email_client import EmailGatewayClient
from clients.payment_client import PaymentGatewayClient
from clients.postgres_client import PostgresClient
from clients.vault_client import get_database_url, get_email_config, get_payment_config
from core.audit import AuditLogger
from core.config import BookingConfig
from core.event_bus import EventBus
from core.handlers import register_handlers
from core.notifications import NotificationDispatcher, NotificationService
from core.repositories import BookingRepository
from core.services.booking_state_machine import BookingStateMachine
from core.services.confirmation_service import ConfirmationService
from core.services.payment_service import PaymentService
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


@dataclass
class BookingServices:
    """Everything a booking entry point needs, wired together."""

    repository: BookingRepository
    event_bus: EventBus
    dispatcher: NotificationDispatcher
    state_machine: BookingStateMachine
    confirmation: ConfirmationService
    payment: PaymentService
    config: BookingConfig

    def shutdown(self) -> None:
        """Let queued notifications finish, within the configured bound."""
        self.dispatcher.shutdown(timeout=self.config.notification_timeout_seconds)


def load_environment(env_file: Path | None = None) -> None:
    """Load .env (VAULT_*, LOG_LEVEL) without overriding the real environment."""
    load_dotenv(env_file or Path(__file__).parent.parent / ".env")


def configure_logging() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_services(
    repository: BookingRepository,
    audit: AuditLogger,
    notifier,
    payments: PaymentGatewayClient,
    config: BookingConfig,
    dispatcher: NotificationDispatcher,
    clock: Callable[[], datetime] = now_utc,
) -> BookingServices:
    """Wire the state machine, protocols and event handlers."""
    event_bus = EventBus()
    register_handlers(event_bus, notifier, repository, payments, config)

    state_machine = BookingStateMachine(repository, audit, event_bus, config, clock)

    return BookingServices(
        repository=repository,
        event_bus=event_bus,
        dispatcher=dispatcher,
        state_machine=state_machine,
        confirmation=ConfirmationService(state_machine),
        payment=PaymentService(state_machine, payments),
        config=config,
    )


def connect(config: BookingConfig | None = None) -> BookingServices:
    """
    Build services against the real database and gateways.

    Raises:
        ValueError, PermissionError: If Vault is not configured or reachable
    """
    config = config or BookingConfig()

    postgres = PostgresClient(get_database_url())
    email = EmailGatewayClient(**get_email_config())
    payments = PaymentGatewayClient(**get_payment_config())

    dispatcher = NotificationDispatcher(max_workers=config.notification_workers)
    notifier = NotificationService(email, postgres, dispatcher)

    services = build_services(
        BookingRepository(postgres), AuditLogger(postgres), notifier, payments, config, dispatcher,
    )
    logger.info("Booking services connected")
    return services
