"""Tests for PaymentService.capture."""

import pytest

from clients.payment_client import PaymentGatewayError
from core.exceptions import ConflictError, PaymentStateError, RoleMismatchError
from core.models import BookingStatus as S, TransactionType


class TestCapture:

    def test_charges_confirmed_booking(self, payment_service, repository, payments, client_actor):
        booking = repository.seed(status=S.CONFIRMED)

        updated, transaction = payment_service.capture(booking.id, client_actor, "card")

        payments.charge.assert_called_once_with(booking.id, 40000, "GHS", "card")
        assert updated.is_paid
        assert updated.status == S.CONFIRMED
        assert updated.payment_method == "card"
        assert transaction.type == TransactionType.BOOKING_PAYMENT
        assert transaction.reference == "ch_test_1"
        assert transaction.amount_cents == 40000

    def test_defaults_to_method_chosen_at_request(self, payment_service, repository, payments, client_actor):
        booking = repository.seed(status=S.CONFIRMED, payment_method="mobile_money")

        payment_service.capture(booking.id, client_actor)

        assert payments.charge.call_args.args[3] == "mobile_money"

    def test_audits_payment(self, payment_service, repository, audit, client_actor):
        booking = repository.seed(status=S.CONFIRMED)

        payment_service.capture(booking.id, client_actor)

        changes = audit.log_change.call_args.kwargs["changes"]
        assert changes["is_paid"] == {"old": False, "new": True}
        assert changes["payment_reference"]["new"] == "ch_test_1"

    @pytest.mark.parametrize("status", [S.PENDING, S.IN_PROGRESS, S.COMPLETED, S.CANCELLED])
    def test_only_confirmed_bookings(self, payment_service, repository, payments, client_actor, status):
        booking = repository.seed(status=status)

        with pytest.raises(PaymentStateError, match=f"Current status: {status.value}"):
            payment_service.capture(booking.id, client_actor)

        payments.charge.assert_not_called()

    def test_already_paid(self, payment_service, repository, payments, client_actor):
        booking = repository.seed(status=S.CONFIRMED, is_paid=True)

        with pytest.raises(PaymentStateError, match="already been paid"):
            payment_service.capture(booking.id, client_actor)

        payments.charge.assert_not_called()

    def test_provider_cannot_pay(self, payment_service, repository, provider_actor):
        booking = repository.seed(status=S.CONFIRMED)

        with pytest.raises(RoleMismatchError):
            payment_service.capture(booking.id, provider_actor)

    def test_gateway_failure_leaves_booking_unpaid(self, payment_service, repository, payments, client_actor):
        booking = repository.seed(status=S.CONFIRMED)
        payments.charge.side_effect = PaymentGatewayError("card declined")

        with pytest.raises(PaymentGatewayError):
            payment_service.capture(booking.id, client_actor)

        assert not repository.current(booking.id).is_paid
        assert repository.transactions == []

    def test_booking_changed_during_charge(self, payment_service, repository, payments, client_actor):
        booking = repository.seed(status=S.CONFIRMED)

        def cancel_mid_charge(*args):
            repository.add(repository.current(booking.id).model_copy(update={"status": S.CANCELLED}))
            return "ch_test_1"

        payments.charge.side_effect = cancel_mid_charge

        with pytest.raises(ConflictError):
            payment_service.capture(booking.id, client_actor)

        assert repository.transactions == []

    def test_paid_booking_refunded_on_client_cancel(self, payment_service, state_machine, repository,
                                                    payments, client_actor):
        """Pay, then cancel with full notice: the whole charge comes back."""
        booking = repository.seed(status=S.CONFIRMED)
        payment_service.capture(booking.id, client_actor)

        result = state_machine.cancel(booking.id, client_actor)

        assert result.refund_percentage == 100
        payments.refund.assert_called_once()
        assert repository.total_for(booking.id, TransactionType.REFUND) == 40000
