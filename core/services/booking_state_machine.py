"""
Booking state machine.

The only code path that changes a booking's status. Every change follows the
same steps: fetch, resolve the actor's role, check the transition policy,
compute derived fields, write once with a compare-and-swap on the status that
was validated, audit, then publish the status event. Notifications and money
movements hang off the published events and cannot fail the transition.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable
from uuid import UUID

from core.audit import AuditLogger, AuditAction, compute_changes
from core.config import BookingConfig
from core.event_bus import EventBus
from core.events import (
    STATUS_EVENTS,
    BookingRequestAccepted, BookingRequestDeclined, BookingRequested,
)
from core.exceptions import (
    AccessDeniedError, AlreadyProcessedError, BookingNotFoundError,
    ConflictError, IllegalTransitionError, MissingDisputeReasonError,
    NotCancellableError, RoleMismatchError,
)
from core.models import (
    Actor, BookingCreate, BookingStatus, BookingView, CancellationResult,
    DisputeCreate, RespondAction, ReviewCreate, Role, RoleFlags,
)
from core.refund_policy import refund_percentage
from core.repositories import BookingRepository
from core.roles import resolve_role
from core.transition_policy import allowed_next_statuses
from utils.timezone import combine_local, now_utc

logger = logging.getLogger(__name__)

CANCELLABLE_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})


class BookingStateMachine:
    """Validates and applies booking status transitions."""

    def __init__(
        self,
        repository: BookingRepository,
        audit: AuditLogger,
        event_bus: EventBus,
        config: BookingConfig | None = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.repository = repository
        self.audit = audit
        self.event_bus = event_bus
        self.config = config or BookingConfig()
        self.clock = clock

    # -------------------------------------------------------------------------
    # Shared steps
    # -------------------------------------------------------------------------

    def load(self, booking_id: UUID) -> BookingView:
        """
        Fetch a booking.

        Raises:
            BookingNotFoundError: If it does not exist
        """
        booking = self.repository.get_by_id(booking_id)
        if booking is None:
            raise BookingNotFoundError(booking_id)
        return booking

    def authorize(self, booking: BookingView, actor: Actor) -> RoleFlags:
        """
        Resolve the actor's role on this booking.

        Raises:
            AccessDeniedError: If the actor is not its client, its provider, or an admin
        """
        flags = resolve_role(booking, actor.id, actor.roles)
        if not flags.has_any:
            raise AccessDeniedError(f"Access denied to booking {booking.id}")
        return flags

    def check_policy(self, booking: BookingView, requested: BookingStatus, flags: RoleFlags) -> None:
        """
        Raises:
            IllegalTransitionError: If the edge is not open to these flags
        """
        if requested not in allowed_next_statuses(booking.status, flags):
            raise IllegalTransitionError(booking.status, requested)

    def apply(
        self,
        booking: BookingView,
        actor: Actor,
        patch: dict[str, Any],
        review: ReviewCreate | None = None,
        dispute: DisputeCreate | None = None,
        **event_details,
    ) -> BookingView:
        """
        Write a validated patch and publish the status event.

        The write only lands if the booking is still in the status it was
        validated in; otherwise nothing changes and ConflictError is raised.

        Args:
            booking: Booking as read before validation
            actor: Who is making the change
            patch: Columns to write; must include "status"
            review: Review row to create in the same write
            dispute: Dispute row to create in the same write
            **event_details: Extra fields for the status event

        Returns:
            Updated booking

        Raises:
            ConflictError: If the status changed since it was read
        """
        new_status = patch["status"]

        result = self.repository.update(
            booking.id, booking.status, patch, review=review, dispute=dispute
        )
        if result is None:
            logger.warning(
                "Booking %s changed before %s -> %s could be written",
                booking.id, booking.status.value, new_status.value,
            )
            raise ConflictError(
                f"Booking {booking.id} was modified concurrently "
                f"(expected status {booking.status.value})"
            )

        updated, created = result
        self._audit_update(booking, updated, actor)

        if created is not None:
            event_details["review" if review is not None else "dispute"] = created

        event_class = STATUS_EVENTS[new_status]
        self.event_bus.publish(event_class.create(
            updated,
            previous_status=booking.status,
            actor_id=actor.id,
            **event_details,
        ))

        logger.info(
            "Booking %s %s -> %s by %s",
            booking.id, booking.status.value, updated.status.value, actor.id,
        )
        return updated

    def _audit_update(self, before: BookingView, after: BookingView, actor: Actor) -> None:
        changes = compute_changes(
            before.model_dump(mode="json", exclude={"client", "provider", "service_title"}),
            after.model_dump(mode="json", exclude={"client", "provider", "service_title"}),
        )
        if changes:
            self.audit.log_change(
                entity_type="booking",
                entity_id=after.id,
                action=AuditAction.UPDATE,
                changes=changes,
                user_id=actor.id,
                at=self.clock(),
            )

    def _cancellation_fields(self, booking: BookingView, actor: Actor, reason: str | None,
                             now: datetime) -> dict[str, Any]:
        """Cancellation metadata, written only the first time a booking is cancelled."""
        if booking.cancelled_at is not None:
            return {}
        return {
            "cancelled_by": actor.id,
            "cancelled_at": now,
            "cancellation_reason": reason,
        }

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def get(self, booking_id: UUID, actor: Actor) -> BookingView:
        """Fetch a booking the actor is party to."""
        booking = self.load(booking_id)
        self.authorize(booking, actor)
        return booking

    def create(self, actor: Actor, data: BookingCreate) -> BookingView:
        """
        Submit a new booking request in PENDING status.

        Raises:
            RoleMismatchError: If the actor is not a client, or books themselves
        """
        if not actor.has_role(Role.CLIENT):
            raise RoleMismatchError("Only clients can request bookings")
        if data.provider_id == actor.id:
            raise RoleMismatchError("Providers cannot book their own services")

        booking = self.repository.create(actor.id, data)

        self.audit.log_change(
            entity_type="booking",
            entity_id=booking.id,
            action=AuditAction.CREATE,
            changes={"created": data.model_dump(mode="json", exclude_none=True)},
            user_id=actor.id,
            at=self.clock(),
        )
        self.event_bus.publish(BookingRequested.create(booking, actor_id=actor.id))

        return booking

    def transition(
        self,
        booking_id: UUID,
        requested: BookingStatus,
        actor: Actor,
        cancellation_reason: str | None = None,
        notes: str | None = None,
        dispute_reason: str | None = None,
    ) -> BookingView:
        """
        Move a booking to a new status.

        Requesting COMPLETED on an IN_PROGRESS booking records the provider's
        completion report: the booking moves to AWAITING_CLIENT_CONFIRMATION
        and the client's confirmation deadline starts. Cancelling a PENDING or
        CONFIRMED booking works out the refund exactly as cancel() does.
        Moving to DISPUTED needs a reason and opens a dispute record.

        Args:
            booking_id: Booking UUID
            requested: Target status
            actor: Authenticated actor
            cancellation_reason: Stored when moving to CANCELLED
            notes: Replaces booking notes when given
            dispute_reason: Required when moving to DISPUTED

        Returns:
            Updated booking

        Raises:
            BookingNotFoundError, AccessDeniedError, IllegalTransitionError,
            RoleMismatchError, MissingDisputeReasonError, ConflictError
        """
        booking = self.load(booking_id)
        flags = self.authorize(booking, actor)
        self.check_policy(booking, requested, flags)

        now = self.clock()
        patch: dict[str, Any] = {"status": requested}
        if notes is not None:
            patch["notes"] = notes
        details: dict[str, Any] = {}
        dispute = None

        if requested in (BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS):
            if not (flags.is_provider or flags.is_admin):
                raise RoleMismatchError(
                    f"Only the provider can move a booking to {requested.value}"
                )

        elif requested == BookingStatus.CANCELLED and booking.status in CANCELLABLE_STATUSES:
            return self._cancel(booking, actor, flags, cancellation_reason, patch).booking

        elif requested == BookingStatus.CANCELLED:
            patch.update(self._cancellation_fields(booking, actor, cancellation_reason, now))
            details["reason"] = cancellation_reason

        elif requested == BookingStatus.DISPUTED:
            reason = (dispute_reason or "").strip()
            if not reason:
                raise MissingDisputeReasonError("A reason is required to dispute a booking")
            dispute = DisputeCreate(raised_by=actor.id, description=reason)
            details["reason"] = reason

        elif requested == BookingStatus.COMPLETED and booking.status == BookingStatus.IN_PROGRESS:
            patch.update(self._completion_report_fields(now))

        elif requested == BookingStatus.COMPLETED and booking.awaiting_confirmation:
            patch["client_confirmed_at"] = now

        return self.apply(booking, actor, patch, dispute=dispute, **details)

    def _completion_report_fields(self, now: datetime) -> dict[str, Any]:
        return {
            "status": BookingStatus.AWAITING_CLIENT_CONFIRMATION,
            "completed_at": now,
            "client_confirm_deadline": now + timedelta(hours=self.config.confirmation_window_hours),
        }

    def mark_complete(self, booking_id: UUID, actor: Actor) -> BookingView:
        """
        Provider reports the work done; opens the client confirmation window.

        Raises:
            RoleMismatchError: If the actor is not the provider or an admin
            IllegalTransitionError: If the booking is not IN_PROGRESS
        """
        booking = self.load(booking_id)
        flags = self.authorize(booking, actor)

        if not (flags.is_provider or flags.is_admin):
            raise RoleMismatchError("Only the provider can mark a booking complete")
        self.check_policy(booking, BookingStatus.COMPLETED, flags)
        if booking.status != BookingStatus.IN_PROGRESS:
            raise IllegalTransitionError(booking.status, BookingStatus.AWAITING_CLIENT_CONFIRMATION)

        return self.apply(booking, actor, self._completion_report_fields(self.clock()))

    def respond(
        self,
        booking_id: UUID,
        action: RespondAction,
        actor: Actor,
        message: str | None = None,
    ) -> BookingView:
        """
        Provider accepts or declines a pending booking request.

        ACCEPT moves PENDING -> CONFIRMED; DECLINE moves PENDING -> CANCELLED.
        The client gets a provider-response notification instead of the
        generic status change one. Declining is not a cancellation: no refund
        policy runs.

        Raises:
            RoleMismatchError: If the actor is not the provider or an admin
            AlreadyProcessedError: If the booking is no longer PENDING
            ConflictError: If another response landed first
        """
        booking = self.load(booking_id)
        flags = self.authorize(booking, actor)

        if not (flags.is_provider or flags.is_admin):
            raise RoleMismatchError("Only the provider can respond to a booking request")
        if booking.status != BookingStatus.PENDING:
            raise AlreadyProcessedError("Booking request has already been processed")

        now = self.clock()
        if action == RespondAction.ACCEPT:
            patch: dict[str, Any] = {"status": BookingStatus.CONFIRMED}
            event_class = BookingRequestAccepted
        else:
            patch = {"status": BookingStatus.CANCELLED}
            patch.update(self._cancellation_fields(
                booking, actor, message or "Declined by provider", now
            ))
            event_class = BookingRequestDeclined

        result = self.repository.update(booking.id, BookingStatus.PENDING, patch)
        if result is None:
            logger.warning("Booking %s answered concurrently; %s lost", booking.id, action.value)
            raise ConflictError(f"Booking {booking.id} was answered by another request")

        updated, _ = result
        self._audit_update(booking, updated, actor)
        self.event_bus.publish(event_class.create(
            updated,
            previous_status=booking.status,
            actor_id=actor.id,
            message=message,
        ))

        logger.info("Booking %s request %sed by %s", booking.id, action.value, actor.id)
        return updated

    def cancel(self, booking_id: UUID, actor: Actor, reason: str | None = None) -> CancellationResult:
        """
        Cancel a PENDING or CONFIRMED booking and work out the refund owed.

        A client cancelling gets the notice-based refund percentage. When the
        provider or an admin cancels, the client is refunded in full.

        Returns:
            CancellationResult with the updated booking and refund percentage

        Raises:
            NotCancellableError: If the booking is past CONFIRMED
            IllegalTransitionError, AccessDeniedError, ConflictError
        """
        booking = self.load(booking_id)
        flags = self.authorize(booking, actor)

        if booking.status not in CANCELLABLE_STATUSES:
            raise NotCancellableError("Booking cannot be cancelled at this stage")
        self.check_policy(booking, BookingStatus.CANCELLED, flags)

        return self._cancel(booking, actor, flags, reason, {"status": BookingStatus.CANCELLED})

    def _cancel(self, booking: BookingView, actor: Actor, flags: RoleFlags,
                reason: str | None, patch: dict[str, Any]) -> CancellationResult:
        now = self.clock()
        if flags.is_client:
            scheduled_at = combine_local(
                booking.scheduled_date, booking.scheduled_time, self.config.marketplace_timezone
            )
            percentage = refund_percentage(now, scheduled_at, self.config)
            cancelled_by = "client"
        else:
            percentage = 100
            cancelled_by = "provider" if flags.is_provider else "admin"

        reason = reason or f"Cancelled by {cancelled_by}"
        patch.update(self._cancellation_fields(booking, actor, reason, now))

        updated = self.apply(booking, actor, patch, reason=reason, refund_percentage=percentage)
        return CancellationResult(booking=updated, refund_percentage=percentage)
