"""
Handler for BookingRequestAccepted and BookingRequestDeclined events.

Tells the client how the provider answered, with the provider's message.
"""

import logging
from typing import Callable

from core.events import BookingRequestAccepted, BookingRequestDeclined
from core.models import ResponseOutcome

logger = logging.getLogger(__name__)


def handle_provider_response(notifier) -> Callable:
    """
    Factory that returns a provider response handler.

    Args:
        notifier: NotificationService instance

    Returns:
        Handler callable that sends the response notification to the client
    """

    def handler(event: BookingRequestAccepted | BookingRequestDeclined):
        booking = event.booking
        outcome = (
            ResponseOutcome.ACCEPTED
            if isinstance(event, BookingRequestAccepted)
            else ResponseOutcome.DECLINED
        )

        notifier.send_provider_response(
            booking.id,
            booking.client,
            booking.provider.name,
            booking.service_title or booking.title,
            outcome,
            event.message,
        )

    return handler
