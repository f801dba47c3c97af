"""Tests for BookingStateMachine."""

import threading
from datetime import timedelta
from uuid import uuid4

import pytest

from core.audit import AuditAction
from core.events import BookingCancelled, BookingRequestDeclined
from core.exceptions import (
    AccessDeniedError, AlreadyProcessedError, BookingNotFoundError,
    ConflictError, IllegalTransitionError, MissingDisputeReasonError,
    NotCancellableError, RoleMismatchError,
)
from core.models import BookingCreate, BookingStatus as S, ConfirmAction, RespondAction, Role
from core.transition_policy import allowed_next_statuses
from core.roles import resolve_role
from tests.fakes import NOW, PROVIDER_ID


def _actor_for(role, client_actor, provider_actor, admin_actor):
    return {"client": client_actor, "provider": provider_actor, "admin": admin_actor}[role]


def _record_events(state_machine):
    published = []
    original = state_machine.event_bus.publish

    def publish(event):
        published.append(event)
        original(event)

    state_machine.event_bus.publish = publish
    return published


# =============================================================================
# TRANSITION
# =============================================================================


class TestTransitionTable:
    """transition() accepts exactly the policy table's edges."""

    @pytest.mark.parametrize("current", list(S))
    @pytest.mark.parametrize("requested", list(S))
    @pytest.mark.parametrize("role", ["client", "provider", "admin"])
    def test_every_status_role_and_target(
        self, state_machine, repository, current, requested, role,
        client_actor, provider_actor, admin_actor,
    ):
        actor = _actor_for(role, client_actor, provider_actor, admin_actor)
        booking = repository.seed(status=current)
        allowed = allowed_next_statuses(current, resolve_role(booking, actor.id, actor.roles))

        if requested in allowed:
            updated = state_machine.transition(
                booking.id, requested, actor, dispute_reason="Work was not finished",
            )
            assert updated.status != current
        else:
            with pytest.raises(IllegalTransitionError) as exc_info:
                state_machine.transition(booking.id, requested, actor)
            assert repository.current(booking.id).status == current
            assert str(exc_info.value) == (
                f"Cannot transition from {current.value} to {requested.value}"
            )


class TestTransition:

    def test_missing_booking_is_not_found(self, state_machine, provider_actor):
        with pytest.raises(BookingNotFoundError, match="not found"):
            state_machine.transition(uuid4(), S.CONFIRMED, provider_actor)

    def test_stranger_is_denied_before_policy(self, state_machine, repository, stranger_actor):
        """Access is checked before the edge, even for an impossible edge."""
        booking = repository.seed(status=S.COMPLETED)

        with pytest.raises(AccessDeniedError):
            state_machine.transition(booking.id, S.PENDING, stranger_actor)

    def test_provider_confirms(self, state_machine, repository, provider_actor):
        booking = repository.seed(status=S.PENDING)

        updated = state_machine.transition(booking.id, S.CONFIRMED, provider_actor)

        assert updated.status == S.CONFIRMED
        assert repository.current(booking.id).status == S.CONFIRMED

    def test_cancel_sets_cancellation_metadata(self, state_machine, repository, provider_actor):
        booking = repository.seed(status=S.CONFIRMED)

        updated = state_machine.transition(
            booking.id, S.CANCELLED, provider_actor, cancellation_reason="Van broke down",
        )

        assert updated.cancelled_by == PROVIDER_ID
        assert updated.cancelled_at == NOW
        assert updated.cancellation_reason == "Van broke down"

    def test_cancellation_metadata_is_not_overwritten(
        self, state_machine, repository, admin_actor,
    ):
        """Re-entering CANCELLED after a refund keeps the original metadata."""
        first_cancel = NOW - timedelta(days=2)
        booking = repository.seed(
            status=S.REFUNDED,
            cancelled_by=PROVIDER_ID, cancelled_at=first_cancel, cancellation_reason="original",
        )

        updated = state_machine.transition(
            booking.id, S.CANCELLED, admin_actor, cancellation_reason="second",
        )

        assert updated.cancelled_by == PROVIDER_ID
        assert updated.cancelled_at == first_cancel
        assert updated.cancellation_reason == "original"

    def test_completed_from_in_progress_awaits_confirmation(
        self, state_machine, repository, provider_actor, config,
    ):
        booking = repository.seed(status=S.IN_PROGRESS)

        updated = state_machine.transition(booking.id, S.COMPLETED, provider_actor)

        assert updated.status == S.AWAITING_CLIENT_CONFIRMATION
        assert updated.completed_at == NOW
        assert updated.client_confirm_deadline == NOW + timedelta(hours=config.confirmation_window_hours)

    def test_notes_are_written_with_the_status(self, state_machine, repository, provider_actor):
        booking = repository.seed(status=S.PENDING)

        updated = state_machine.transition(booking.id, S.CONFIRMED, provider_actor, notes="Bring ladder")

        assert updated.notes == "Bring ladder"

    def test_publishes_status_event_with_previous_status(
        self, state_machine, repository, provider_actor,
    ):
        published = _record_events(state_machine)
        booking = repository.seed(status=S.CONFIRMED)

        state_machine.transition(booking.id, S.IN_PROGRESS, provider_actor)

        assert len(published) == 1
        event = published[0]
        assert type(event).__name__ == "BookingStarted"
        assert event.previous_status == S.CONFIRMED
        assert event.actor_id == provider_actor.id

    def test_audits_the_change(self, state_machine, repository, audit, provider_actor):
        booking = repository.seed(status=S.PENDING)

        state_machine.transition(booking.id, S.CONFIRMED, provider_actor)

        audit.log_change.assert_called_once()
        kwargs = audit.log_change.call_args.kwargs
        assert kwargs["action"] == AuditAction.UPDATE
        assert kwargs["user_id"] == provider_actor.id
        assert kwargs["changes"]["status"] == {"old": "pending", "new": "confirmed"}

    def test_lost_compare_and_swap_raises_conflict(
        self, state_machine, repository, provider_actor, monkeypatch,
    ):
        booking = repository.seed(status=S.PENDING)
        monkeypatch.setattr(repository, "update", lambda *args, **kwargs: None)

        with pytest.raises(ConflictError):
            state_machine.transition(booking.id, S.CONFIRMED, provider_actor)

    def test_notification_failure_does_not_fail_transition(
        self, state_machine, repository, notifier, provider_actor,
    ):
        notifier.send_status_change.side_effect = RuntimeError("smtp down")
        booking = repository.seed(status=S.PENDING)

        updated = state_machine.transition(booking.id, S.CONFIRMED, provider_actor)

        assert updated.status == S.CONFIRMED
        assert notifier.send_status_change.call_count == 2


# =============================================================================
# CREATE
# =============================================================================


class TestCreate:

    def _request(self, **overrides):
        data = dict(
            provider_id=PROVIDER_ID,
            title="Plumbing repair",
            scheduled_date=(NOW + timedelta(days=2)).date(),
            scheduled_time="10:30",
            total_amount_cents=15000,
        )
        data.update(overrides)
        return BookingCreate(**data)

    def test_client_creates_pending_request(self, state_machine, audit, notifier, client_actor):
        booking = state_machine.create(client_actor, self._request())

        assert booking.status == S.PENDING
        assert booking.client_id == client_actor.id
        assert audit.log_change.call_args.kwargs["action"] == AuditAction.CREATE

        # provider is told about the new request
        recipients = [c.args[2] for c in notifier.send_status_change.call_args_list]
        assert recipients == [Role.PROVIDER]

    def test_provider_role_cannot_request(self, state_machine, provider_actor):
        with pytest.raises(RoleMismatchError):
            state_machine.create(provider_actor, self._request())

    def test_cannot_book_yourself(self, state_machine, client_actor):
        with pytest.raises(RoleMismatchError, match="own"):
            state_machine.create(client_actor, self._request(provider_id=client_actor.id))


# =============================================================================
# RESPOND
# =============================================================================


class TestRespond:

    def test_accept_confirms(self, state_machine, repository, provider_actor):
        booking = repository.seed(status=S.PENDING)

        updated = state_machine.respond(booking.id, RespondAction.ACCEPT, provider_actor)

        assert updated.status == S.CONFIRMED

    def test_decline_cancels_without_refund_policy(
        self, state_machine, repository, provider_actor, payments, notifier,
    ):
        published = _record_events(state_machine)
        booking = repository.seed(status=S.PENDING)

        updated = state_machine.respond(
            booking.id, RespondAction.DECLINE, provider_actor, message="unavailable",
        )

        assert updated.status == S.CANCELLED
        assert updated.cancelled_at == NOW
        assert [type(e) for e in published] == [BookingRequestDeclined]
        assert not any(isinstance(e, BookingCancelled) for e in published)
        payments.refund.assert_not_called()
        notifier.send_status_change.assert_not_called()

        call = notifier.send_provider_response.call_args
        assert call.args[-1] == "unavailable"

    def test_second_response_is_already_processed(self, state_machine, repository, provider_actor):
        booking = repository.seed(status=S.PENDING)
        state_machine.respond(booking.id, RespondAction.ACCEPT, provider_actor)

        with pytest.raises(AlreadyProcessedError, match="already been processed"):
            state_machine.respond(booking.id, RespondAction.DECLINE, provider_actor)

        assert repository.current(booking.id).status == S.CONFIRMED

    def test_client_cannot_respond(self, state_machine, repository, client_actor):
        booking = repository.seed(status=S.PENDING)

        with pytest.raises(RoleMismatchError):
            state_machine.respond(booking.id, RespondAction.ACCEPT, client_actor)

    def test_admin_can_respond(self, state_machine, repository, admin_actor):
        booking = repository.seed(status=S.PENDING)

        updated = state_machine.respond(booking.id, RespondAction.ACCEPT, admin_actor)

        assert updated.status == S.CONFIRMED


class TestConcurrentRespond:
    """Two responses racing on one PENDING booking."""

    def test_exactly_one_of_accept_and_decline_wins(self, state_machine, repository, provider_actor):
        booking = repository.seed(status=S.PENDING)
        repository.read_barrier = threading.Barrier(2)

        outcomes = {}

        def respond(action):
            try:
                outcomes[action] = state_machine.respond(booking.id, action, provider_actor).status
            except (ConflictError, AlreadyProcessedError) as e:
                outcomes[action] = e

        threads = [
            threading.Thread(target=respond, args=(action,))
            for action in (RespondAction.ACCEPT, RespondAction.DECLINE)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)
        repository.read_barrier = None

        winners = [v for v in outcomes.values() if isinstance(v, S)]
        losers = [v for v in outcomes.values() if isinstance(v, Exception)]
        assert len(winners) == 1
        assert len(losers) == 1

        final = repository.current(booking.id).status
        assert final == winners[0]
        assert final in (S.CONFIRMED, S.CANCELLED)


# =============================================================================
# MARK COMPLETE
# =============================================================================


class TestMarkComplete:

    def test_deadline_is_exactly_48h_after_completion(self, state_machine, repository, provider_actor):
        booking = repository.seed(status=S.IN_PROGRESS)

        updated = state_machine.mark_complete(booking.id, provider_actor)

        assert updated.status == S.AWAITING_CLIENT_CONFIRMATION
        assert updated.client_confirm_deadline - updated.completed_at == timedelta(hours=48)

    def test_client_cannot_mark_complete(self, state_machine, repository, client_actor):
        booking = repository.seed(status=S.IN_PROGRESS)

        with pytest.raises(RoleMismatchError):
            state_machine.mark_complete(booking.id, client_actor)

    def test_requires_in_progress(self, state_machine, repository, provider_actor):
        booking = repository.seed(status=S.CONFIRMED)

        with pytest.raises(IllegalTransitionError):
            state_machine.mark_complete(booking.id, provider_actor)

    def test_admin_cannot_use_it_to_resolve_a_dispute(self, state_machine, repository, admin_actor):
        booking = repository.seed(status=S.DISPUTED)

        with pytest.raises(IllegalTransitionError):
            state_machine.mark_complete(booking.id, admin_actor)


# =============================================================================
# CANCEL
# =============================================================================


class TestCancel:

    def _booking_starting_in(self, repository, delta, **overrides):
        start = NOW + delta
        return repository.seed(
            scheduled_date=start.date(), scheduled_time=start.strftime("%H:%M"), **overrides,
        )

    @pytest.mark.parametrize("notice, expected", [
        (timedelta(days=2), 100),
        (timedelta(hours=24), 100),
        (timedelta(hours=5), 50),
        (timedelta(hours=1), 0),
    ])
    def test_client_refund_follows_notice(self, state_machine, repository, client_actor, notice, expected):
        booking = self._booking_starting_in(repository, notice, status=S.CONFIRMED)

        result = state_machine.cancel(booking.id, client_actor)

        assert result.refund_percentage == expected
        assert result.booking.status == S.CANCELLED

    def test_default_reason_names_who_cancelled(self, state_machine, repository, client_actor):
        booking = repository.seed(status=S.PENDING)

        result = state_machine.cancel(booking.id, client_actor)

        assert result.booking.cancellation_reason == "Cancelled by client"
        assert result.booking.cancelled_by == client_actor.id

    def test_provider_cancellation_refunds_in_full(self, state_machine, repository, provider_actor):
        booking = self._booking_starting_in(repository, timedelta(minutes=30), status=S.CONFIRMED)

        result = state_machine.cancel(booking.id, provider_actor, reason="Sick")

        assert result.refund_percentage == 100
        assert result.booking.cancellation_reason == "Sick"

    @pytest.mark.parametrize("status", [
        S.IN_PROGRESS, S.AWAITING_CLIENT_CONFIRMATION, S.COMPLETED,
        S.CANCELLED, S.DISPUTED, S.REFUNDED,
    ])
    def test_only_pending_or_confirmed(self, state_machine, repository, client_actor, status):
        booking = repository.seed(status=status)

        with pytest.raises(NotCancellableError):
            state_machine.cancel(booking.id, client_actor)

    def test_paid_booking_is_refunded_by_percentage(
        self, state_machine, repository, client_actor, payments,
    ):
        booking = self._booking_starting_in(
            repository, timedelta(hours=5), status=S.CONFIRMED, is_paid=True, total_amount_cents=40000,
        )

        state_machine.cancel(booking.id, client_actor)

        payments.refund.assert_called_once()
        assert payments.refund.call_args.args[1] == 20000

    def test_status_endpoint_cancellation_uses_refund_policy(
        self, state_machine, repository, client_actor, payments,
    ):
        """transition(CANCELLED) from CONFIRMED refunds the same way cancel() does."""
        booking = self._booking_starting_in(
            repository, timedelta(hours=5), status=S.CONFIRMED, is_paid=True, total_amount_cents=40000,
        )
        published = _record_events(state_machine)

        updated = state_machine.transition(booking.id, S.CANCELLED, client_actor)

        assert updated.status == S.CANCELLED
        assert updated.cancellation_reason == "Cancelled by client"
        assert published[0].refund_percentage == 50
        assert payments.refund.call_args.args[1] == 20000

    def test_late_stage_cancellation_leaves_refund_to_admin(
        self, state_machine, repository, admin_actor, payments,
    ):
        booking = repository.seed(status=S.IN_PROGRESS, is_paid=True)
        published = _record_events(state_machine)

        state_machine.transition(booking.id, S.CANCELLED, admin_actor, cancellation_reason="No show")

        assert published[0].refund_percentage is None
        payments.refund.assert_not_called()


class TestDisputeEdges:
    """Entering DISPUTED through transition() is held to the dispute rules."""

    @pytest.mark.parametrize("reason", [None, "", "   "])
    def test_reason_required(self, state_machine, repository, client_actor, reason):
        booking = repository.seed(status=S.AWAITING_CLIENT_CONFIRMATION)

        with pytest.raises(MissingDisputeReasonError):
            state_machine.transition(booking.id, S.DISPUTED, client_actor, dispute_reason=reason)

        assert repository.current(booking.id).status == S.AWAITING_CLIENT_CONFIRMATION
        assert repository.disputes == []

    def test_opens_dispute_record(self, state_machine, repository, client_actor):
        booking = repository.seed(status=S.AWAITING_CLIENT_CONFIRMATION)

        updated = state_machine.transition(
            booking.id, S.DISPUTED, client_actor, dispute_reason="  Kitchen not cleaned ",
        )

        assert updated.status == S.DISPUTED
        assert len(repository.disputes) == 1
        assert repository.disputes[0].description == "Kitchen not cleaned"
        assert repository.disputes[0].raised_by == client_actor.id

    def test_illegal_edge_checked_before_reason(self, state_machine, repository, provider_actor):
        booking = repository.seed(status=S.AWAITING_CLIENT_CONFIRMATION)

        with pytest.raises(IllegalTransitionError):
            state_machine.transition(booking.id, S.DISPUTED, provider_actor)

    @pytest.mark.parametrize("resolution", [S.COMPLETED, S.CANCELLED, S.REFUNDED])
    def test_admin_resolution_closes_dispute(
        self, state_machine, confirmation, repository, client_actor, admin_actor, resolution,
    ):
        booking = repository.seed(status=S.AWAITING_CLIENT_CONFIRMATION)
        confirmation.confirm_completion(booking.id, client_actor, ConfirmAction.DISPUTE, reason="not done")
        assert repository.disputes[0].resolved_at is None

        state_machine.transition(booking.id, resolution, admin_actor)

        assert repository.disputes[0].resolved_at == NOW


# =============================================================================
# SCENARIOS
# =============================================================================


class TestScenarios:

    def test_happy_path(self, state_machine, confirmation, repository,
                        client_actor, provider_actor):
        booking = repository.seed(status=S.PENDING)

        assert state_machine.respond(booking.id, RespondAction.ACCEPT, provider_actor).status == S.CONFIRMED
        assert state_machine.transition(booking.id, S.IN_PROGRESS, provider_actor).status == S.IN_PROGRESS

        awaiting = state_machine.mark_complete(booking.id, provider_actor)
        assert awaiting.status == S.AWAITING_CLIENT_CONFIRMATION
        assert awaiting.client_confirm_deadline is not None

        done = confirmation.confirm_completion(booking.id, client_actor, ConfirmAction.ACCEPT, rating=5)
        assert done.status == S.COMPLETED
        assert len(repository.reviews) == 1
        assert repository.reviews[0].overall_rating == 5

    def test_late_cancellation(self, state_machine, repository, client_actor):
        start = NOW + timedelta(hours=1)
        booking = repository.seed(
            status=S.CONFIRMED, scheduled_date=start.date(), scheduled_time=start.strftime("%H:%M"),
        )

        result = state_machine.cancel(booking.id, client_actor)

        assert result.refund_percentage == 0
        assert result.booking.status == S.CANCELLED

    def test_admin_dispute_resolution(self, state_machine, repository, admin_actor):
        booking = repository.seed(status=S.DISPUTED)

        with pytest.raises(IllegalTransitionError):
            state_machine.transition(booking.id, S.IN_PROGRESS, admin_actor)

        assert state_machine.transition(booking.id, S.REFUNDED, admin_actor).status == S.REFUNDED
