"""Booking domain models.

All amounts are stored in cents (integer) to avoid floating point issues.
Commission rates are basis points (10000 = 100%).
"""

from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class BookingStatus(str, Enum):
    """Booking lifecycle status."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    AWAITING_CLIENT_CONFIRMATION = "awaiting_client_confirmation"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"
    REFUNDED = "refunded"


class RespondAction(str, Enum):
    """Provider answer to a new booking request."""

    ACCEPT = "accept"
    DECLINE = "decline"


class ConfirmAction(str, Enum):
    """Client answer to a provider's completion report."""

    ACCEPT = "accept"
    DISPUTE = "dispute"


class ResponseOutcome(str, Enum):
    """Outcome carried by provider response notifications."""

    ACCEPTED = "accepted"
    DECLINED = "declined"


class Party(BaseModel):
    """Flattened contact details of a booking's client or provider."""

    id: UUID
    name: str
    email: str | None = None
    phone: str | None = None


class BookingCreate(BaseModel):
    """Data a client submits to request a booking."""

    provider_id: UUID
    service_id: UUID | None = None
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=5000)
    location: str | None = Field(None, max_length=500)
    scheduled_date: date
    scheduled_time: str = Field(..., pattern=r"^\d{2}:\d{2}$")
    duration_minutes: int = Field(60, ge=1)
    total_amount_cents: int = Field(..., ge=0)
    currency: str = Field("GHS", min_length=3, max_length=3)
    payment_method: str | None = None
    notes: str | None = Field(None, max_length=2000)


class Booking(BaseModel):
    """Full booking entity as stored."""

    id: UUID
    client_id: UUID
    provider_id: UUID
    service_id: UUID | None
    title: str
    description: str | None
    location: str | None
    scheduled_date: date
    scheduled_time: str
    duration_minutes: int
    total_amount_cents: int
    currency: str
    payment_method: str | None
    is_paid: bool
    escrow_released: bool = False
    status: BookingStatus
    notes: str | None
    cancellation_reason: str | None
    cancelled_by: UUID | None
    cancelled_at: datetime | None
    completed_at: datetime | None
    client_confirm_deadline: datetime | None
    client_confirmed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @property
    def is_cancelled(self) -> bool:
        return self.status == BookingStatus.CANCELLED

    @property
    def awaiting_confirmation(self) -> bool:
        """Whether the client still has to confirm or dispute."""
        return self.status == BookingStatus.AWAITING_CLIENT_CONFIRMATION


class BookingView(Booking):
    """Booking with client and provider already resolved.

    Callers never see the profile indirection the database uses to link
    bookings to users.
    """

    client: Party
    provider: Party
    service_title: str | None = None


class CancellationResult(BaseModel):
    """Outcome of a cancellation: the booking and the refund owed."""

    booking: BookingView
    refund_percentage: int


# =============================================================================
# OWNED RECORDS
# =============================================================================


class ReviewCreate(BaseModel):
    """Review attached when a client confirms completion."""

    rating: int = Field(5, ge=1, le=5)
    comment: str = Field("", max_length=5000)


class Review(BaseModel):
    """Full review entity as stored."""

    id: UUID
    booking_id: UUID
    client_id: UUID
    provider_id: UUID
    overall_rating: int
    comment: str
    created_at: datetime

    model_config = {"from_attributes": True}


class DisputeType(str, Enum):
    """Category of a dispute."""

    SERVICE_QUALITY = "service_quality"


class DisputeCreate(BaseModel):
    """Dispute raised when a client rejects a completion report."""

    raised_by: UUID
    description: str = Field(..., min_length=1)
    subject: str = "Service completion dispute"
    type: DisputeType = DisputeType.SERVICE_QUALITY


class Dispute(BaseModel):
    """Full dispute entity as stored."""

    id: UUID
    booking_id: UUID
    raised_by: UUID
    type: DisputeType
    subject: str
    description: str
    resolved_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class TransactionType(str, Enum):
    """Kind of money movement attached to a booking."""

    BOOKING_PAYMENT = "booking_payment"
    REFUND = "refund"
    ESCROW_RELEASE = "escrow_release"


class Transaction(BaseModel):
    """Payment record owned by a booking."""

    id: UUID
    booking_id: UUID
    user_id: UUID
    type: TransactionType
    amount_cents: int
    currency: str
    reference: str | None = None
    description: str | None = None
    metadata: dict[str, Any] | None = None
    created_at: datetime

    model_config = {"from_attributes": True}
