"""
Payment capture for confirmed bookings.

Money is charged through the payment gateway and held in escrow by the
marketplace. Capturing a payment does not move the booking's status; escrow
is released to the provider when the booking completes.
"""

import logging
from uuid import UUID

from clients.payment_client import PaymentGatewayClient
from core.audit import AuditAction
from core.events import BookingPaid
from core.exceptions import ConflictError, PaymentStateError, RoleMismatchError
from core.models import Actor, BookingStatus, BookingView, Transaction
from core.services.booking_state_machine import BookingStateMachine

logger = logging.getLogger(__name__)


class PaymentService:
    """Charges clients for confirmed bookings."""

    def __init__(self, state_machine: BookingStateMachine, payments: PaymentGatewayClient):
        self.state_machine = state_machine
        self.payments = payments

    def capture(
        self,
        booking_id: UUID,
        actor: Actor,
        payment_method: str | None = None,
    ) -> tuple[BookingView, Transaction]:
        """
        Charge the client the booking total.

        Args:
            booking_id: Booking UUID
            actor: The booking's client
            payment_method: Overrides the method chosen at request time

        Returns:
            (updated booking, BOOKING_PAYMENT transaction)

        Raises:
            RoleMismatchError: If the actor is not the booking's client
            PaymentStateError: If the booking is not CONFIRMED or already paid
            PaymentGatewayError: If the gateway rejects the charge
            ConflictError: If the booking changed while the charge was in flight
        """
        sm = self.state_machine
        booking = sm.load(booking_id)
        flags = sm.authorize(booking, actor)

        if not flags.is_client:
            raise RoleMismatchError("Only the client can pay for a booking")
        if booking.status != BookingStatus.CONFIRMED:
            raise PaymentStateError(
                "Payment can only be processed for confirmed bookings. "
                f"Current status: {booking.status.value}"
            )
        if booking.is_paid:
            raise PaymentStateError("Booking has already been paid")

        method = payment_method or booking.payment_method
        reference = self.payments.charge(
            booking.id, booking.total_amount_cents, booking.currency, method
        )

        result = sm.repository.mark_paid(booking.id, method, reference)
        if result is None:
            # The gateway charge is idempotent per booking, so a retry after
            # reconciling will not double-charge.
            logger.error(
                "Booking %s charged (ref %s) but changed before payment was recorded",
                booking.id, reference,
            )
            raise ConflictError(f"Booking {booking.id} changed while payment was processing")

        updated, transaction = result

        sm.audit.log_change(
            entity_type="booking",
            entity_id=booking.id,
            action=AuditAction.UPDATE,
            changes={
                "is_paid": {"old": False, "new": True},
                "payment_reference": {"old": None, "new": reference},
            },
            user_id=actor.id,
            at=sm.clock(),
        )
        sm.event_bus.publish(BookingPaid.create(
            updated, previous_status=booking.status, actor_id=actor.id, transaction=transaction
        ))

        logger.info("Captured %d %s for booking %s", booking.total_amount_cents,
                    booking.currency, booking.id)
        return updated, transaction
