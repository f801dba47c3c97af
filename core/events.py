"""
Domain events for the booking marketplace.

Immutable event objects that represent state changes in a booking's life.
Events enable loose coupling between the state machine and its side effects:
the state machine publishes what happened, and handlers (notifications,
escrow release, refunds) react without the publisher knowing who's listening.

Event Categories:
- Status change events: one class per status a booking can enter, so copy and
  side effects are chosen by type rather than by comparing status strings.
- Request response events: the provider's accept/decline answer, which carries
  different copy than a plain status change.
- Payment events: payment captured for a confirmed booking.

Events carry the full BookingView so handlers don't need to re-fetch state.
This prevents race conditions where persistence hasn't completed yet.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from core.models import BookingStatus
from utils.timezone import now_utc


@dataclass(frozen=True, kw_only=True)
class MarketplaceEvent:
    """Base class for all marketplace domain events."""
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=now_utc)


# =============================================================================
# BOOKING EVENTS
# =============================================================================


@dataclass(frozen=True, kw_only=True)
class BookingEvent(MarketplaceEvent):
    """Events related to booking lifecycle."""
    booking: Any = None  # BookingView
    previous_status: BookingStatus | None = None
    actor_id: UUID | None = None

    @classmethod
    def create(cls, booking: Any, previous_status: BookingStatus | None = None,
               actor_id: UUID | None = None, **details) -> "BookingEvent":
        return cls(booking=booking, previous_status=previous_status, actor_id=actor_id, **details)


@dataclass(frozen=True, kw_only=True)
class BookingRequested(BookingEvent):
    """A client submitted a new booking request (PENDING)."""
    pass


@dataclass(frozen=True, kw_only=True)
class BookingStatusChanged(BookingEvent):
    """Base for events published when a booking enters a new status."""
    pass


@dataclass(frozen=True, kw_only=True)
class BookingReopened(BookingStatusChanged):
    """Admin moved a cancelled booking back to PENDING."""
    pass


@dataclass(frozen=True, kw_only=True)
class BookingConfirmed(BookingStatusChanged):
    """Booking entered CONFIRMED through a status transition."""
    pass


@dataclass(frozen=True, kw_only=True)
class BookingStarted(BookingStatusChanged):
    """Provider started work (IN_PROGRESS)."""
    pass


@dataclass(frozen=True, kw_only=True)
class BookingAwaitingConfirmation(BookingStatusChanged):
    """Provider reported completion; the client confirmation window is open."""
    pass


@dataclass(frozen=True, kw_only=True)
class BookingCompleted(BookingStatusChanged):
    """Booking COMPLETED: client confirmed, the deadline passed, or an admin resolved it."""
    auto_confirmed: bool = False
    review: Any = None  # Review | None


@dataclass(frozen=True, kw_only=True)
class BookingDisputed(BookingStatusChanged):
    """Completion disputed; payment release is frozen pending admin review."""
    reason: str | None = None
    dispute: Any = None  # Dispute | None


@dataclass(frozen=True, kw_only=True)
class BookingCancelled(BookingStatusChanged):
    """Booking cancelled. refund_percentage is None when no refund policy applied."""
    reason: str | None = None
    refund_percentage: int | None = None


@dataclass(frozen=True, kw_only=True)
class BookingRefunded(BookingStatusChanged):
    """Admin marked the booking REFUNDED."""
    pass


# Exactly one status change event per status
STATUS_EVENTS: dict[BookingStatus, type[BookingStatusChanged]] = {
    BookingStatus.PENDING: BookingReopened,
    BookingStatus.CONFIRMED: BookingConfirmed,
    BookingStatus.IN_PROGRESS: BookingStarted,
    BookingStatus.AWAITING_CLIENT_CONFIRMATION: BookingAwaitingConfirmation,
    BookingStatus.COMPLETED: BookingCompleted,
    BookingStatus.CANCELLED: BookingCancelled,
    BookingStatus.DISPUTED: BookingDisputed,
    BookingStatus.REFUNDED: BookingRefunded,
}


# =============================================================================
# REQUEST RESPONSE EVENTS
# =============================================================================


@dataclass(frozen=True, kw_only=True)
class BookingRequestAccepted(BookingEvent):
    """Provider accepted a pending request."""
    message: str | None = None


@dataclass(frozen=True, kw_only=True)
class BookingRequestDeclined(BookingEvent):
    """Provider declined a pending request."""
    message: str | None = None


# =============================================================================
# PAYMENT EVENTS
# =============================================================================


@dataclass(frozen=True, kw_only=True)
class BookingPaid(BookingEvent):
    """Client payment captured for a confirmed booking."""
    transaction: Any = None  # Transaction
