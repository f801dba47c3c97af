"""
Client confirmation protocol.

After the provider reports a job done, the client either accepts (optionally
leaving a review) or disputes with a reason. If they do neither before the
confirmation deadline, the sweeper accepts on their behalf.
"""

import logging
from datetime import datetime
from uuid import UUID

from core.exceptions import (
    BookingValidationError, IllegalTransitionError,
    MissingDisputeReasonError, RoleMismatchError,
)
from core.models import (
    Actor, BookingStatus, BookingView, ConfirmAction,
    DisputeCreate, ReviewCreate, RoleFlags,
)
from core.services.booking_state_machine import BookingStateMachine

logger = logging.getLogger(__name__)

# The sweep accepts on the client's behalf, so it is held to the client's edges
_ON_BEHALF_OF_CLIENT = RoleFlags(is_client=True)


class ConfirmationService:
    """Accept or dispute a provider's completion report."""

    def __init__(self, state_machine: BookingStateMachine):
        self.state_machine = state_machine

    def confirm_completion(
        self,
        booking_id: UUID,
        actor: Actor,
        action: ConfirmAction,
        reason: str | None = None,
        rating: int | None = None,
        review: str | None = None,
    ) -> BookingView:
        """
        Resolve an AWAITING_CLIENT_CONFIRMATION booking.

        ACCEPT completes the booking and, if a rating or review text was
        given, records a review (rating defaults to 5). DISPUTE requires a
        non-blank reason and opens a dispute record; payment release stays
        frozen until an admin resolves it.

        Args:
            booking_id: Booking UUID
            actor: The booking's client (or an admin)
            action: ACCEPT or DISPUTE
            reason: Why the client disputes; required for DISPUTE
            rating: 1-5 star rating for ACCEPT
            review: Review text for ACCEPT

        Returns:
            Updated booking

        Raises:
            RoleMismatchError: If the actor is not the client or an admin
            IllegalTransitionError: If the booking is not awaiting confirmation
            MissingDisputeReasonError: If DISPUTE has no usable reason
            BookingValidationError: If the rating is out of range
        """
        sm = self.state_machine
        booking = sm.load(booking_id)
        flags = sm.authorize(booking, actor)

        if not (flags.is_client or flags.is_admin):
            raise RoleMismatchError("Only the client can confirm completion")

        if action == ConfirmAction.DISPUTE:
            return self._dispute(booking, actor, flags, reason)
        return self._accept(booking, actor, flags, rating, review)

    def _accept(self, booking: BookingView, actor: Actor, flags: RoleFlags,
                rating: int | None, review: str | None) -> BookingView:
        sm = self.state_machine
        self._require_awaiting(booking, BookingStatus.COMPLETED, flags)

        review_create = None
        comment = (review or "").strip()
        if rating is not None or comment:
            if rating is not None and not 1 <= rating <= 5:
                raise BookingValidationError("Rating must be between 1 and 5")
            review_create = ReviewCreate(rating=rating or 5, comment=comment)

        patch = {
            "status": BookingStatus.COMPLETED,
            "client_confirmed_at": sm.clock(),
        }
        return sm.apply(booking, actor, patch, review=review_create, auto_confirmed=False)

    def _dispute(self, booking: BookingView, actor: Actor, flags: RoleFlags,
                 reason: str | None) -> BookingView:
        sm = self.state_machine

        reason = (reason or "").strip()
        if not reason:
            raise MissingDisputeReasonError("A reason is required to dispute a completion")

        self._require_awaiting(booking, BookingStatus.DISPUTED, flags)

        dispute = DisputeCreate(raised_by=actor.id, description=reason)
        patch = {"status": BookingStatus.DISPUTED}
        return sm.apply(booking, actor, patch, dispute=dispute, reason=reason)

    def _require_awaiting(self, booking: BookingView, requested: BookingStatus,
                          flags: RoleFlags) -> None:
        if not booking.awaiting_confirmation:
            raise IllegalTransitionError(booking.status, requested)
        self.state_machine.check_policy(booking, requested, flags)

    def auto_confirm(self, booking_id: UUID, now: datetime | None = None) -> BookingView:
        """
        Complete a booking whose confirmation window has closed.

        Runs as the system actor. Callers should skip bookings with an open
        dispute; the status check here catches anything that changed since
        they were listed.

        Raises:
            BookingValidationError: If the booking is no longer awaiting
                confirmation or its deadline has not passed
            ConflictError: If the client answered while this was running
        """
        sm = self.state_machine
        booking = sm.load(booking_id)
        now = now or sm.clock()

        if not booking.awaiting_confirmation:
            raise BookingValidationError(
                f"Booking {booking_id} is no longer awaiting confirmation ({booking.status.value})"
            )
        if booking.client_confirm_deadline is None or booking.client_confirm_deadline > now:
            raise BookingValidationError(
                f"Booking {booking_id} confirmation window is still open"
            )
        sm.check_policy(booking, BookingStatus.COMPLETED, _ON_BEHALF_OF_CLIENT)

        patch = {
            "status": BookingStatus.COMPLETED,
            "client_confirmed_at": now,
        }
        updated = sm.apply(booking, Actor.system(), patch, auto_confirmed=True)

        logger.info("Auto-confirmed booking %s (deadline %s)", booking_id,
                    booking.client_confirm_deadline.isoformat())
        return updated
