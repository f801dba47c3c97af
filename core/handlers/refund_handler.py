"""
Handlers for BookingCancelled and BookingRefunded events.

Cancelling a paid booking refunds the percentage the cancellation policy
granted. An admin marking a booking REFUNDED returns whatever is still
outstanding. Refunds never exceed what was paid.
"""

import logging
from typing import Callable

from core.events import BookingCancelled, BookingRefunded
from core.models import TransactionType

logger = logging.getLogger(__name__)


def _outstanding(repository, booking) -> int:
    refunded = repository.total_for(booking.id, TransactionType.REFUND)
    return max(booking.total_amount_cents - refunded, 0)


def _refund(repository, payments, booking, amount_cents: int, reason: str, metadata: dict) -> None:
    reference = payments.refund(booking.id, amount_cents, booking.currency, reason)
    repository.add_transaction(
        booking.id,
        booking.client_id,
        TransactionType.REFUND,
        amount_cents,
        booking.currency,
        reference=reference,
        description=reason,
        metadata=metadata,
    )
    logger.info("Refunded %d %s for booking %s", amount_cents, booking.currency, booking.id)


def handle_booking_cancelled(repository, payments) -> Callable:
    """
    Factory that returns a BookingCancelled handler.

    Args:
        repository: BookingRepository instance
        payments: PaymentGatewayClient instance

    Returns:
        Handler callable that refunds the policy percentage of a paid booking
    """

    def handler(event: BookingCancelled):
        booking = event.booking

        if not booking.is_paid or not event.refund_percentage:
            return

        owed = booking.total_amount_cents * event.refund_percentage // 100
        amount = min(owed, _outstanding(repository, booking))
        if amount <= 0:
            return

        _refund(
            repository, payments, booking, amount,
            f"Cancellation refund ({event.refund_percentage}%)",
            {"refund_percentage": event.refund_percentage},
        )

    return handler


def handle_booking_refunded(repository, payments) -> Callable:
    """
    Factory that returns a BookingRefunded handler.

    Args:
        repository: BookingRepository instance
        payments: PaymentGatewayClient instance

    Returns:
        Handler callable that refunds the unrefunded remainder
    """

    def handler(event: BookingRefunded):
        booking = event.booking

        if not booking.is_paid:
            return

        amount = _outstanding(repository, booking)
        if amount <= 0:
            return

        _refund(
            repository, payments, booking, amount,
            "Refund approved by admin",
            {"previous_status": event.previous_status.value if event.previous_status else None},
        )

    return handler
