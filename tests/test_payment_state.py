"""Tests for the payment attempt state machine."""

from schemas.payment_schema import PaymentAttemptOut, PaymentStatus
from services.payment_state import (
    PaymentStateMachine,
    StatusUpdate,
    map_confirmation_result,
    map_gateway_status,
    plan_transition,
)


def _record(status: PaymentStatus = PaymentStatus.PENDING, **overrides) -> PaymentAttemptOut:
    payload = {
        "_id": "665f1c2e9b1e8a3d4c5b6a70",
        "user_id": "u1",
        "amount": "100",
        "amount_minor": 10000,
        "currency": "EUR",
        "status": status,
        "external_intent_id": "pi_1",
        "created_at": 100,
        "updated_at": 100,
    }
    payload.update(overrides)
    return PaymentAttemptOut(**payload)


class TestPaymentStateMachine:
    """Test state machine transitions."""

    def test_valid_transitions(self):
        """Test that valid transitions are allowed."""
        assert PaymentStateMachine.can_transition("pending", "processing") is True
        assert PaymentStateMachine.can_transition("processing", "succeeded") is True
        assert PaymentStateMachine.can_transition("pending", "failed") is True
        assert PaymentStateMachine.can_transition("pending", "canceled") is True
        assert PaymentStateMachine.can_transition("processing", "canceled") is True

        # the gateway may report an outcome without an intermediate step
        assert PaymentStateMachine.can_transition("pending", "succeeded") is True

        # retry with a new payment method after a decline
        assert PaymentStateMachine.can_transition("failed", "succeeded") is True

    def test_invalid_transitions(self):
        """Test that settled outcomes are not regressed."""
        assert PaymentStateMachine.can_transition("succeeded", "failed") is False
        assert PaymentStateMachine.can_transition("succeeded", "pending") is False
        assert PaymentStateMachine.can_transition("canceled", "succeeded") is False
        assert PaymentStateMachine.can_transition("processing", "pending") is False

    def test_refund_is_the_only_way_out_of_succeeded(self):
        assert PaymentStateMachine.can_transition("succeeded", "canceled") is False
        assert PaymentStateMachine.can_transition("succeeded", "canceled", refund=True) is True
        assert PaymentStateMachine.can_transition("canceled", "succeeded", refund=True) is False

    def test_canceled_has_no_way_out(self):
        for target in PaymentStatus:
            assert PaymentStateMachine.can_transition("canceled", target) is False
            assert PaymentStateMachine.can_transition("canceled", target, refund=True) is False


class TestGatewayStatusMapping:
    def test_gateway_statuses_map_onto_local_statuses(self):
        assert map_gateway_status("succeeded") == PaymentStatus.SUCCEEDED
        assert map_gateway_status("requires_action") == PaymentStatus.PROCESSING
        assert map_gateway_status("requires_capture") == PaymentStatus.PROCESSING
        assert map_gateway_status("requires_payment_method") == PaymentStatus.PENDING
        assert map_gateway_status("canceled") == PaymentStatus.CANCELED
        assert map_gateway_status("something_new") is None

    def test_confirmation_requiring_payment_method_is_a_failure(self):
        assert map_confirmation_result("requires_payment_method") == (
            PaymentStatus.FAILED,
            "Payment method required",
        )
        assert map_confirmation_result("succeeded") == (PaymentStatus.SUCCEEDED, None)
        assert map_confirmation_result("requires_action") == (PaymentStatus.PROCESSING, None)


class TestPlanTransition:
    def test_transition_stamps_processed_at(self):
        plan = plan_transition(_record(), StatusUpdate(status=PaymentStatus.SUCCEEDED), now=500)

        assert plan.changed is True
        assert plan.update_dict == {"status": "succeeded", "processed_at": 500}

    def test_processed_at_never_moves_backwards(self):
        record = _record(PaymentStatus.PROCESSING, processed_at=900)

        plan = plan_transition(record, StatusUpdate(status=PaymentStatus.SUCCEEDED), now=500)

        assert plan.update_dict["processed_at"] == 900

    def test_failure_carries_reason(self):
        plan = plan_transition(_record(), StatusUpdate(status=PaymentStatus.FAILED), now=500)

        assert plan.update_dict["failure_reason"] == "Payment failed"

    def test_recovery_from_failure_clears_reason(self):
        record = _record(PaymentStatus.FAILED, failure_reason="Your card was declined.", processed_at=400)

        plan = plan_transition(record, StatusUpdate(status=PaymentStatus.SUCCEEDED), now=500)

        assert plan.update_dict == {"status": "succeeded", "processed_at": 500, "failure_reason": None}

    def test_same_status_is_absorbed(self):
        record = _record(PaymentStatus.SUCCEEDED, processed_at=400, external_status="succeeded")

        plan = plan_transition(
            record,
            StatusUpdate(status=PaymentStatus.SUCCEEDED, external_status="succeeded"),
            now=500,
        )

        assert plan.changed is False
        assert plan.stale is False
        assert plan.update_dict == {}

    def test_update_against_settled_record_is_stale(self):
        record = _record(PaymentStatus.SUCCEEDED, processed_at=400)

        plan = plan_transition(
            record,
            StatusUpdate(status=PaymentStatus.FAILED, failure_reason="late", external_status="requires_payment_method"),
            now=500,
        )

        assert plan.stale is True
        assert plan.update_dict == {}

    def test_unrecognised_status_only_mirrors_external_status(self):
        plan = plan_transition(_record(), StatusUpdate(status=None, external_status="something_new"), now=500)

        assert plan.changed is False
        assert plan.update_dict == {"external_status": "something_new"}
