"""
Handler for booking status change events.

Builds client and provider copy from the event type and hands each message
to the notification port. Each status has its own event class, so a new
status without copy fails the copy table test rather than silently sending a
generic message.
"""

import logging
from typing import Callable

from core.events import (
    BookingAwaitingConfirmation, BookingCancelled, BookingCompleted,
    BookingConfirmed, BookingDisputed, BookingEvent, BookingRefunded,
    BookingReopened, BookingRequested, BookingStarted,
)
from core.models import Role
from utils.timezone import to_local

logger = logging.getLogger(__name__)

# (title, body) per recipient role; a role missing from the dict is not notified
Copy = dict[Role, tuple[str, str]]


def _service(event: BookingEvent) -> str:
    booking = event.booking
    return booking.service_title or booking.title


def _requested(event: BookingRequested, tz: str) -> Copy:
    b = event.booking
    return {
        Role.PROVIDER: (
            "New Booking Request",
            f"{b.client.name} requested \"{_service(event)}\" on "
            f"{b.scheduled_date.isoformat()} at {b.scheduled_time}. Please accept or decline.",
        ),
    }


def _reopened(event: BookingReopened, tz: str) -> Copy:
    return {
        Role.CLIENT: (
            "Booking Reopened",
            f"Your booking for \"{_service(event)}\" has been reopened and is awaiting the provider.",
        ),
        Role.PROVIDER: (
            "Booking Reopened",
            f"The booking for \"{_service(event)}\" has been reopened. Please accept or decline.",
        ),
    }


def _confirmed(event: BookingConfirmed, tz: str) -> Copy:
    return {
        Role.CLIENT: (
            "Booking Confirmed",
            f"Your booking for \"{_service(event)}\" has been confirmed! The provider will contact you soon.",
        ),
        Role.PROVIDER: (
            "Booking Confirmed",
            f"You have confirmed the booking for \"{_service(event)}\". "
            "Please contact the client to finalize details.",
        ),
    }


def _started(event: BookingStarted, tz: str) -> Copy:
    return {
        Role.CLIENT: (
            "Service Started",
            f"Your service \"{_service(event)}\" has started. The provider is now working on your request.",
        ),
        Role.PROVIDER: (
            "Service Started",
            f"You have started working on \"{_service(event)}\". Remember to mark it complete when finished.",
        ),
    }


def _awaiting(event: BookingAwaitingConfirmation, tz: str) -> Copy:
    deadline = event.booking.client_confirm_deadline
    by = f" by {to_local(deadline, tz).strftime('%Y-%m-%d %H:%M')}" if deadline else ""
    return {
        Role.CLIENT: (
            "Please Confirm Your Service",
            f"{event.booking.provider.name} marked \"{_service(event)}\" as complete. "
            f"Please confirm or raise a dispute{by}. "
            "If you do nothing, the booking will be confirmed automatically.",
        ),
        Role.PROVIDER: (
            "Awaiting Client Confirmation",
            f"You marked \"{_service(event)}\" as complete. "
            "Payment is released once the client confirms.",
        ),
    }


def _completed(event: BookingCompleted, tz: str) -> Copy:
    if event.auto_confirmed:
        client_body = (
            f"Your service \"{_service(event)}\" was confirmed automatically because "
            "the confirmation window closed."
        )
    else:
        client_body = f"Your service \"{_service(event)}\" has been completed! Please leave a review and rating."
    return {
        Role.CLIENT: ("Service Completed", client_body),
        Role.PROVIDER: (
            "Service Completed",
            f"The service \"{_service(event)}\" is complete. Payment will be released to your account soon.",
        ),
    }


def _disputed(event: BookingDisputed, tz: str) -> Copy:
    reason = f" Reason: {event.reason}" if event.reason else ""
    return {
        Role.CLIENT: (
            "Dispute Opened",
            f"Your dispute for \"{_service(event)}\" has been received. Our team will review it.",
        ),
        Role.PROVIDER: (
            "Booking Disputed",
            f"The client disputed the completion of \"{_service(event)}\". "
            f"Payment is on hold until the dispute is resolved.{reason}",
        ),
    }


def _cancelled(event: BookingCancelled, tz: str) -> Copy:
    refund = ""
    if event.refund_percentage is not None and event.booking.is_paid:
        refund = f" You will be refunded {event.refund_percentage}% of the amount paid."
    elif event.booking.is_paid:
        refund = " Our team will follow up with you about the amount paid."
    reason = f" Reason: {event.reason}" if event.reason else ""
    return {
        Role.CLIENT: (
            "Booking Cancelled",
            f"Your booking for \"{_service(event)}\" has been cancelled.{refund}{reason}",
        ),
        Role.PROVIDER: (
            "Booking Cancelled",
            f"The booking for \"{_service(event)}\" has been cancelled. "
            f"You are now available for this time slot.{reason}",
        ),
    }


def _refunded(event: BookingRefunded, tz: str) -> Copy:
    return {
        Role.CLIENT: (
            "Booking Refunded",
            f"Your payment for \"{_service(event)}\" has been refunded.",
        ),
        Role.PROVIDER: (
            "Booking Refunded",
            f"The booking for \"{_service(event)}\" was refunded to the client.",
        ),
    }


COPY: dict[type[BookingEvent], Callable[[BookingEvent, str], Copy]] = {
    BookingRequested: _requested,
    BookingReopened: _reopened,
    BookingConfirmed: _confirmed,
    BookingStarted: _started,
    BookingAwaitingConfirmation: _awaiting,
    BookingCompleted: _completed,
    BookingDisputed: _disputed,
    BookingCancelled: _cancelled,
    BookingRefunded: _refunded,
}


def handle_status_change(notifier, timezone: str = "UTC") -> Callable:
    """
    Factory that returns a handler for every status change event.

    Args:
        notifier: NotificationService instance
        timezone: Zone used to show deadlines in copy

    Returns:
        Handler callable that notifies the booking's client and provider
    """

    def handler(event: BookingEvent):
        booking = event.booking
        messages = COPY[type(event)](event, timezone)

        for role, party in ((Role.CLIENT, booking.client), (Role.PROVIDER, booking.provider)):
            if role not in messages:
                continue
            title, body = messages[role]
            try:
                notifier.send_status_change(
                    booking.id, party, role, event.previous_status, booking.status, title, body,
                )
            except Exception:
                logger.exception(
                    "Failed to queue %s notification for booking %s", role.value, booking.id
                )

    return handler
