"""
Handler for BookingCompleted events.

Releases the escrowed payment to the provider, less the marketplace
commission, and refreshes the provider's rating.
"""

import logging
from typing import Callable

from core.config import BookingConfig
from core.events import BookingCompleted

logger = logging.getLogger(__name__)


def provider_share(total_cents: int, commission_rate_bps: int) -> tuple[int, int]:
    """
    Split a booking total into (provider amount, commission), in cents.

    Commission is rounded down in the provider's favour.
    """
    commission = total_cents * commission_rate_bps // 10000
    return total_cents - commission, commission


def handle_booking_completed(repository, config: BookingConfig) -> Callable:
    """
    Factory that returns a BookingCompleted handler.

    Args:
        repository: BookingRepository instance
        config: Commission settings

    Returns:
        Handler callable that releases escrow for paid bookings
    """

    def handler(event: BookingCompleted):
        booking = event.booking

        if event.review is not None:
            repository.refresh_provider_rating(booking.provider_id)

        if not booking.is_paid:
            logger.info("Booking %s completed unpaid; nothing to release", booking.id)
            return
        if booking.escrow_released:
            return

        amount, commission = provider_share(booking.total_amount_cents, config.commission_rate_bps)
        transaction = repository.release_escrow(
            booking.id,
            amount,
            {
                "total_amount_cents": booking.total_amount_cents,
                "commission_cents": commission,
                "commission_rate_bps": config.commission_rate_bps,
                "auto_confirmed": event.auto_confirmed,
            },
        )

        if transaction is None:
            logger.info("Escrow for booking %s already released", booking.id)
            return

        logger.info(
            "Released %d %s to provider %s for booking %s (commission %d)",
            amount, booking.currency, booking.provider_id, booking.id, commission,
        )

    return handler
