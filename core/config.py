"""Booking lifecycle configuration."""

from pydantic import BaseModel, Field


class BookingConfig(BaseModel):
    """
    Booking lifecycle configuration.

    Durations are in their natural units (hours for lifecycle windows,
    seconds for worker timings).
    """

    # Confirmation protocol
    confirmation_window_hours: int = Field(
        default=48,
        description="How long a client has to confirm or dispute a completion report",
        ge=1,
    )

    # Cancellation refund policy
    full_refund_hours: int = Field(
        default=24,
        description="Cancel at least this many hours ahead for a full refund",
        ge=1,
    )
    partial_refund_hours: int = Field(
        default=2,
        description="Cancel at least this many hours ahead for a partial refund",
        ge=0,
    )
    partial_refund_percentage: int = Field(
        default=50,
        description="Refund percentage inside the partial window",
        ge=0,
        le=100,
    )

    # Escrow
    commission_rate_bps: int = Field(
        default=500,  # 5%
        description="Marketplace commission withheld on escrow release",
        ge=0,
        le=10000,
    )

    # Scheduling
    marketplace_timezone: str = Field(
        default="Africa/Accra",
        description="IANA timezone in which scheduled_date/scheduled_time are expressed",
    )

    # Notifications
    notification_workers: int = Field(
        default=4,
        description="Background threads delivering notifications",
        ge=1,
        le=32,
    )
    notification_timeout_seconds: float = Field(
        default=10.0,
        description="Upper bound on waiting for outstanding notifications at shutdown",
        gt=0,
    )

    # Auto-confirm sweep
    sweep_interval_seconds: int = Field(
        default=300,
        description="Delay between auto-confirm sweeps",
        ge=1,
    )
    sweep_batch_size: int = Field(
        default=100,
        description="Maximum overdue bookings handled per sweep",
        ge=1,
        le=1000,
    )
