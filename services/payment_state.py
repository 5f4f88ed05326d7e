"""Payment attempt state machine and gateway status mapping."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from core.payments.types import GatewayIntentStatus
from schemas.payment_schema import PaymentAttemptOut, PaymentStatus


class PaymentStateMachine:
    """State machine for payment attempt status transitions.

    Allowed transitions:
    - pending → processing, succeeded, failed, canceled
    - processing → succeeded, failed, canceled
    - failed → processing, succeeded, canceled (gateway reports a retry with
      a new payment method on the same intent)

    succeeded and canceled are terminal. A full refund is the only way out of
    succeeded (succeeded → canceled) and is validated separately.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        PaymentStatus.PENDING: [
            PaymentStatus.PROCESSING,
            PaymentStatus.SUCCEEDED,
            PaymentStatus.FAILED,
            PaymentStatus.CANCELED,
        ],
        PaymentStatus.PROCESSING: [
            PaymentStatus.SUCCEEDED,
            PaymentStatus.FAILED,
            PaymentStatus.CANCELED,
        ],
        PaymentStatus.SUCCEEDED: [],
        PaymentStatus.FAILED: [
            PaymentStatus.PROCESSING,
            PaymentStatus.SUCCEEDED,
            PaymentStatus.CANCELED,
        ],
        PaymentStatus.CANCELED: [],
    }

    REFUND_TRANSITIONS: dict[str, list[str]] = {
        PaymentStatus.SUCCEEDED: [PaymentStatus.CANCELED],
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str, *, refund: bool = False) -> bool:
        """Check if a transition is valid."""
        allowed = list(cls.VALID_TRANSITIONS.get(from_status, []))
        if refund:
            allowed.extend(cls.REFUND_TRANSITIONS.get(from_status, []))
        return to_status in allowed


GATEWAY_STATUS_MAP: dict[str, PaymentStatus] = {
    GatewayIntentStatus.SUCCEEDED.value: PaymentStatus.SUCCEEDED,
    GatewayIntentStatus.PROCESSING.value: PaymentStatus.PROCESSING,
    GatewayIntentStatus.REQUIRES_ACTION.value: PaymentStatus.PROCESSING,
    GatewayIntentStatus.REQUIRES_CAPTURE.value: PaymentStatus.PROCESSING,
    GatewayIntentStatus.REQUIRES_PAYMENT_METHOD.value: PaymentStatus.PENDING,
    GatewayIntentStatus.REQUIRES_CONFIRMATION.value: PaymentStatus.PENDING,
    GatewayIntentStatus.CANCELED.value: PaymentStatus.CANCELED,
}


def map_gateway_status(gateway_status: str) -> PaymentStatus | None:
    """Local status for a gateway intent status, or None when unrecognised."""
    return GATEWAY_STATUS_MAP.get(gateway_status)


def map_confirmation_result(gateway_status: str) -> tuple[PaymentStatus | None, str | None]:
    """Local status and failure reason after a confirm call."""
    if gateway_status == GatewayIntentStatus.REQUIRES_PAYMENT_METHOD.value:
        return PaymentStatus.FAILED, "Payment method required"
    return map_gateway_status(gateway_status), None


@dataclass(frozen=True)
class StatusUpdate:
    """A desired status change computed against one version of a record."""

    status: PaymentStatus | None
    failure_reason: str | None = None
    external_status: str | None = None
    refund: bool = False
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TransitionPlan:
    update_dict: dict[str, Any]
    changed: bool
    stale: bool = False


def plan_transition(record: PaymentAttemptOut, update: StatusUpdate, *, now: int | None = None) -> TransitionPlan:
    """Work out the fields to write for ``update`` against ``record``.

    Same-status updates and updates against a terminal record are absorbed
    without error so repeated or out-of-order deliveries converge.
    """
    stamp = now if now is not None else int(time.time())
    update_dict: dict[str, Any] = dict(update.extra)
    if update.external_status is not None and update.external_status != record.external_status:
        update_dict["external_status"] = update.external_status

    target = update.status
    current = record.status
    if target is None or target == current:
        return TransitionPlan(update_dict=update_dict, changed=False)

    if not PaymentStateMachine.can_transition(current, target, refund=update.refund):
        # the record already settled; only ledger fields still apply
        return TransitionPlan(update_dict=dict(update.extra), changed=False, stale=True)

    update_dict["status"] = target.value
    update_dict["processed_at"] = max(record.processed_at or 0, stamp)
    if target == PaymentStatus.FAILED:
        update_dict["failure_reason"] = update.failure_reason or "Payment failed"
    elif record.failure_reason is not None:
        update_dict["failure_reason"] = None
    return TransitionPlan(update_dict=update_dict, changed=True)
