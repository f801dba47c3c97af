"""Event handlers and their wiring onto the event bus."""

from core.config import BookingConfig
from core.event_bus import EventBus
from core.events import STATUS_EVENTS
from core.handlers.escrow_release_handler import handle_booking_completed
from core.handlers.provider_response_handler import handle_provider_response
from core.handlers.refund_handler import handle_booking_cancelled, handle_booking_refunded
from core.handlers.status_notification_handler import handle_status_change


def register_handlers(event_bus: EventBus, notifier, repository, payments, config: BookingConfig) -> None:
    """
    Subscribe every booking side effect.

    Money handlers run before notifications so copy is sent after refunds
    and releases have been attempted.
    """
    event_bus.subscribe("BookingCompleted", handle_booking_completed(repository, config))
    event_bus.subscribe("BookingCancelled", handle_booking_cancelled(repository, payments))
    event_bus.subscribe("BookingRefunded", handle_booking_refunded(repository, payments))

    event_bus.subscribe_many(
        ["BookingRequested"] + [cls.__name__ for cls in STATUS_EVENTS.values()],
        handle_status_change(notifier, config.marketplace_timezone),
    )
    event_bus.subscribe_many(
        ["BookingRequestAccepted", "BookingRequestDeclined"],
        handle_provider_response(notifier),
    )


__all__ = [
    "register_handlers",
    "handle_booking_completed",
    "handle_booking_cancelled",
    "handle_booking_refunded",
    "handle_provider_response",
    "handle_status_change",
]
