"""Core domain models."""

from core.models.actor import Actor, Role, RoleFlags, SYSTEM_ACTOR_ID
from core.models.booking import (
    Booking, BookingCreate, BookingView, BookingStatus, CancellationResult,
    Party, RespondAction, ConfirmAction, ResponseOutcome,
    Review, ReviewCreate,
    Dispute, DisputeCreate, DisputeType,
    Transaction, TransactionType,
)

__all__ = [
    # Actor
    "Actor", "Role", "RoleFlags", "SYSTEM_ACTOR_ID",
    # Booking
    "Booking", "BookingCreate", "BookingView", "BookingStatus", "CancellationResult",
    "Party", "RespondAction", "ConfirmAction", "ResponseOutcome",
    # Owned records
    "Review", "ReviewCreate",
    "Dispute", "DisputeCreate", "DisputeType",
    "Transaction", "TransactionType",
]
