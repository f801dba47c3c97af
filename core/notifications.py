"""
Notification port: status-change and provider-response messages.

Each message goes out twice, as an email through the gateway and as an
in-app notification row. Every send is submitted to a background pool and
the caller returns immediately. Sends fail independently: one failing email
never stops the in-app row or the other party's messages, and no failure
ever reaches the booking transition that triggered it.
"""

import json
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable
from uuid import UUID, uuid4

from clients.email_client import EmailGatewayClient
from clients.postgres_client import PostgresClient
from core.models import BookingStatus, Party, ResponseOutcome, Role
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

# Status changes important enough to also email
EMAIL_STATUSES = frozenset({
    BookingStatus.CONFIRMED,
    BookingStatus.AWAITING_CLIENT_CONFIRMATION,
    BookingStatus.COMPLETED,
    BookingStatus.CANCELLED,
    BookingStatus.DISPUTED,
    BookingStatus.REFUNDED,
})


class NotificationDispatcher:
    """
    Fire-and-forget background executor for notification sends.

    Jobs never raise into the caller; failures are logged with their label.
    """

    def __init__(self, max_workers: int = 4):
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="notify")
        self._pending: set[Future] = set()
        self._lock = threading.Lock()

    def submit(self, label: str, fn: Callable, *args, **kwargs) -> Future:
        """Schedule fn in the background. Returns immediately."""

        def job():
            try:
                fn(*args, **kwargs)
            except Exception:
                logger.exception("Notification %s failed", label)

        future = self._executor.submit(job)
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)
        return future

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def drain(self, timeout: float | None = None) -> bool:
        """
        Wait for outstanding sends.

        Returns:
            True if everything finished within timeout.
        """
        with self._lock:
            pending = set(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        if not_done:
            logger.warning("%d notification(s) still running after %ss", len(not_done), timeout)
        return not not_done

    def shutdown(self, timeout: float | None = None) -> None:
        """Drain then stop the pool."""
        self.drain(timeout)
        self._executor.shutdown(wait=False, cancel_futures=True)


class NotificationService:
    """Delivers booking notifications by email and in-app."""

    def __init__(
        self,
        email: EmailGatewayClient | None,
        postgres: PostgresClient,
        dispatcher: NotificationDispatcher,
    ):
        self.email = email
        self.postgres = postgres
        self.dispatcher = dispatcher

    def send_status_change(
        self,
        booking_id: UUID,
        recipient: Party,
        recipient_role: Role,
        old_status: BookingStatus | None,
        new_status: BookingStatus,
        title: str,
        body: str,
    ) -> None:
        """
        Notify one party that a booking changed status.

        Returns as soon as the sends are queued.
        """
        data = {
            "booking_id": str(booking_id),
            "old_status": old_status.value if old_status else None,
            "new_status": new_status.value,
        }

        self.dispatcher.submit(
            f"in-app {new_status.value} for {recipient.id}",
            self._create_in_app, recipient.id, recipient_role,
            f"booking_{new_status.value}", title, body, data,
        )

        if new_status in EMAIL_STATUSES:
            self._queue_email(recipient, title, body)

    def send_provider_response(
        self,
        booking_id: UUID,
        client: Party,
        provider_name: str,
        service_title: str,
        outcome: ResponseOutcome,
        message: str | None = None,
    ) -> None:
        """
        Tell the client whether the provider accepted their request.

        Returns as soon as the sends are queued.
        """
        if outcome == ResponseOutcome.ACCEPTED:
            title = "Booking Request Accepted"
            body = (
                f"Great news! {provider_name} has accepted your booking request for "
                f"\"{service_title}\". Please complete your payment to confirm the booking."
            )
            next_action = "complete_payment"
        else:
            title = "Booking Request Declined"
            reason = f"Reason: {message}" if message else "You can try booking with another provider."
            body = f"{provider_name} has declined your booking request for \"{service_title}\". {reason}"
            next_action = "find_new_provider"

        if message and outcome == ResponseOutcome.ACCEPTED:
            body += f" Message from {provider_name}: {message}"

        data = {
            "booking_id": str(booking_id),
            "response": outcome.value,
            "provider_message": message,
            "next_action": next_action,
        }

        self.dispatcher.submit(
            f"in-app response for {client.id}",
            self._create_in_app, client.id, Role.CLIENT,
            f"booking_request_{outcome.value}", title, body, data,
        )
        self._queue_email(client, title, body)

    def _queue_email(self, recipient: Party, subject: str, body: str) -> None:
        if self.email is None or not recipient.email:
            return
        self.dispatcher.submit(
            f"email to {recipient.email}",
            self.email.send_email, recipient.email, subject, body,
        )

    def _create_in_app(
        self,
        user_id: UUID,
        role: Role,
        notification_type: str,
        title: str,
        message: str,
        data: dict[str, Any],
    ) -> None:
        self.postgres.execute(
            """
            INSERT INTO notifications (id, user_id, user_type, type, title, message, data, is_read, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                uuid4(), user_id, role.value, notification_type,
                title, message, json.dumps(data), False, now_utc(),
            )
        )
