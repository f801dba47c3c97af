"""Cancellation refund policy."""

from datetime import datetime, timedelta

from core.config import BookingConfig

_DEFAULT_CONFIG = BookingConfig()


def refund_percentage(
    now: datetime,
    scheduled_at: datetime,
    config: BookingConfig = _DEFAULT_CONFIG,
) -> int:
    """
    Percentage of the booking total refunded on cancellation.

    With default config:
        >= 24h before the booking: 100
        >= 2h and < 24h: 50
        < 2h (or already started): 0

    Boundaries are inclusive on the generous side: exactly 24h is a full
    refund, exactly 2h is a partial one.

    Args:
        now: Cancellation time (UTC)
        scheduled_at: Booking start time (UTC)
        config: Refund windows

    Returns:
        0, config.partial_refund_percentage, or 100
    """
    notice = scheduled_at - now

    if notice >= timedelta(hours=config.full_refund_hours):
        return 100
    if notice >= timedelta(hours=config.partial_refund_hours):
        return config.partial_refund_percentage
    return 0
