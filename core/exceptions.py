"""Typed exceptions for booking lifecycle failures.

Raised at the state machine boundary and mapped to HTTP responses by
api.errors. None of these are retried automatically.
"""


class BookingError(Exception):
    """Base class for booking lifecycle errors."""


class BookingNotFoundError(BookingError):
    """Booking id does not exist."""

    def __init__(self, booking_id):
        self.booking_id = booking_id
        super().__init__(f"Booking {booking_id} not found")


class AccessDeniedError(BookingError):
    """Actor is neither the booking's client, its provider, nor an admin."""


class BookingValidationError(BookingError):
    """Request is well-formed but not allowed in the booking's current state."""


class IllegalTransitionError(BookingValidationError):
    """Requested status is not reachable from the current one for this actor."""

    def __init__(self, current, requested):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot transition from {current.value} to {requested.value}")


class AlreadyProcessedError(BookingValidationError):
    """Provider answered a booking request that is no longer pending."""


class RoleMismatchError(BookingValidationError):
    """Convenience operation called by an actor who cannot perform it."""


class MissingDisputeReasonError(BookingValidationError):
    """Dispute raised with an empty or whitespace-only reason."""


class NotCancellableError(BookingValidationError):
    """Cancellation requested outside PENDING or CONFIRMED."""


class PaymentStateError(BookingValidationError):
    """Payment capture requested for a booking that cannot be paid."""


class ConflictError(BookingError):
    """
    Booking changed between read and write.

    The compare-and-swap on status found a different status than the one the
    transition was validated against. The caller may re-read and retry.
    """
