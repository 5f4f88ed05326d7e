from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, TypeVar

import structlog
from pymongo.errors import DuplicateKeyError

from core.errors import (
    GatewayError,
    PaymentValidationError,
    SignatureInvalidError,
    gateway_not_configured,
    payment_conflict,
    resource_not_found,
)
from core.money import normalize_currency, to_decimal, to_minor_units
from core.payments import (
    GatewayEvent,
    GatewayEventKind,
    GatewayIntentRequest,
    GatewayIntentStatus,
    GatewayManager,
    PaymentGateway,
)
from repositories.payment_repo import (
    create_payment_attempt,
    get_payment_attempt_by_external_intent_id,
    get_payment_attempt_by_id,
    is_webhook_event_processed,
    list_payment_attempts_by_user,
    mark_webhook_event_processed,
    update_payment_attempt,
)
from schemas.payment_schema import (
    ConfirmIn,
    ConfirmOut,
    CreateIntentIn,
    CreateIntentOut,
    CustomerIn,
    CustomerOut,
    PaymentAttemptCreate,
    PaymentAttemptOut,
    PaymentStatus,
    RefundEntry,
    RefundIn,
    RefundOut,
    WebhookAck,
    WebhookEventCreate,
)
from services.payment_state import (
    StatusUpdate,
    map_confirmation_result,
    map_gateway_status,
    plan_transition,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

MAX_UPDATE_ATTEMPTS = 3

_CONFIRMABLE_STATUSES = {
    GatewayIntentStatus.REQUIRES_PAYMENT_METHOD.value,
    GatewayIntentStatus.REQUIRES_CONFIRMATION.value,
}


def _epoch() -> int:
    return int(time.time())


def _get_gateway_manager() -> GatewayManager:
    try:
        return GatewayManager.get_instance()
    except RuntimeError as err:
        raise gateway_not_configured(str(err)) from err


async def _gateway_call(operation: str, call: Awaitable[T], **log_context) -> T:
    manager = _get_gateway_manager()
    try:
        return await asyncio.wait_for(call, timeout=manager.call_timeout_seconds)
    except asyncio.TimeoutError as err:
        logger.error("gateway_call_timed_out", operation=operation, **log_context)
        raise GatewayError("Gateway request timed out", raw_kind="timeout", operation=operation) from err
    except GatewayError as err:
        logger.error(
            "gateway_call_failed",
            operation=operation,
            raw_kind=err.raw_kind,
            error=err.gateway_message,
            **log_context,
        )
        raise


async def _get_by_intent_or_404(external_intent_id: str) -> PaymentAttemptOut:
    record = await get_payment_attempt_by_external_intent_id(external_intent_id)
    if record is None:
        raise resource_not_found("PaymentAttempt", external_intent_id)
    return record


async def _apply_status_update(
    record: PaymentAttemptOut,
    build_update: Callable[[PaymentAttemptOut], StatusUpdate],
    *,
    operation: str,
) -> PaymentAttemptOut:
    """Write ``build_update(record)`` with compare-and-set on ``version``.

    On a version conflict the record is re-read and the update rebuilt from
    the fresh copy, so concurrent confirm and webhook paths serialize per record.
    """
    log = logger.bind(operation=operation, payment_id=record.id, external_intent_id=record.external_intent_id)
    for _ in range(MAX_UPDATE_ATTEMPTS):
        update = build_update(record)
        plan = plan_transition(record, update, now=_epoch())
        if plan.stale:
            log.info(
                "payment_status_update_ignored",
                current_status=record.status.value,
                requested_status=update.status.value if update.status else None,
            )
        if not plan.update_dict:
            return record

        updated = await update_payment_attempt(
            payment_id=record.id,  # type: ignore[arg-type]
            expected_version=record.version,
            update_dict=plan.update_dict,
        )
        if updated is not None:
            if plan.changed:
                log.info("payment_status_changed", from_status=record.status.value, to_status=updated.status.value)
            return updated

        log.debug("payment_update_conflict", expected_version=record.version)
        refreshed = await get_payment_attempt_by_id(record.id)  # type: ignore[arg-type]
        if refreshed is None:
            raise resource_not_found("PaymentAttempt", record.id)
        record = refreshed

    log.warning("payment_update_conflict_exhausted", attempts=MAX_UPDATE_ATTEMPTS)
    raise payment_conflict(
        "Payment record was modified concurrently",
        {"payment_id": record.id, "external_intent_id": record.external_intent_id},
    )


async def create_payment_intent(payload: CreateIntentIn) -> CreateIntentOut:
    currency = normalize_currency(payload.currency)
    amount = to_decimal(payload.amount)
    amount_minor = to_minor_units(amount, currency)
    gateway: PaymentGateway = _get_gateway_manager().gateway

    customer_id = payload.external_customer_id
    if not customer_id:
        customer = await _gateway_call(
            "create_customer",
            gateway.create_customer(metadata={"user_id": payload.user_id}),
            user_id=payload.user_id,
        )
        customer_id = customer.id

    metadata = dict(payload.metadata or {})
    intent = await _gateway_call(
        "create_intent",
        gateway.create_intent(
            GatewayIntentRequest(
                amount_minor=amount_minor,
                currency=currency.lower(),
                customer_id=customer_id,
                description=payload.description,
                metadata={**metadata, "user_id": payload.user_id},
                payment_method_id=payload.payment_method_id,
            )
        ),
        user_id=payload.user_id,
    )

    now = _epoch()
    try:
        record = await create_payment_attempt(
            PaymentAttemptCreate(
                user_id=payload.user_id,
                amount=amount,
                amount_minor=amount_minor,
                currency=currency,
                status=PaymentStatus.PENDING,
                external_intent_id=intent.id,
                external_customer_id=customer_id,
                external_status=intent.status,
                description=payload.description,
                metadata=metadata,
                created_at=now,
                updated_at=now,
            )
        )
    except DuplicateKeyError as err:
        logger.error("payment_intent_duplicate", external_intent_id=intent.id)
        raise payment_conflict("Payment intent is already recorded", {"external_intent_id": intent.id}) from err

    logger.info(
        "payment_intent_created",
        payment_id=record.id,
        user_id=record.user_id,
        external_intent_id=intent.id,
        amount_minor=amount_minor,
        currency=currency,
    )
    return CreateIntentOut(
        payment_id=record.id,  # type: ignore[arg-type]
        client_secret=intent.client_secret,
        external_intent_id=intent.id,
        customer_id=customer_id,
    )


async def confirm_payment(payload: ConfirmIn) -> ConfirmOut:
    record = await _get_by_intent_or_404(payload.external_intent_id)
    gateway: PaymentGateway = _get_gateway_manager().gateway
    context = {"payment_id": record.id, "external_intent_id": record.external_intent_id}

    intent = await _gateway_call("retrieve_intent", gateway.retrieve_intent(record.external_intent_id), **context)

    if intent.status == GatewayIntentStatus.SUCCEEDED.value:
        update = StatusUpdate(status=PaymentStatus.SUCCEEDED, external_status=intent.status)
    elif intent.status in _CONFIRMABLE_STATUSES:
        intent = await _gateway_call(
            "confirm_intent",
            gateway.confirm_intent(record.external_intent_id, payment_method_id=payload.payment_method_id),
            **context,
        )
        status, failure_reason = map_confirmation_result(intent.status)
        update = StatusUpdate(status=status, failure_reason=failure_reason, external_status=intent.status)
    else:
        update = StatusUpdate(status=map_gateway_status(intent.status), external_status=intent.status)

    if update.status is None:
        logger.warning("gateway_status_unrecognised", gateway_status=intent.status, **context)

    updated = await _apply_status_update(record, lambda _current: update, operation="confirm")
    return ConfirmOut(payment_id=updated.id, status=updated.status, intent=intent.raw)  # type: ignore[arg-type]


def _webhook_status_update(event: GatewayEvent) -> StatusUpdate | None:
    data_object = (event.payload.get("data") or {}).get("object") or {}
    external_status = data_object.get("status")
    if event.kind == GatewayEventKind.INTENT_SUCCEEDED.value:
        return StatusUpdate(status=PaymentStatus.SUCCEEDED, external_status=external_status)
    if event.kind == GatewayEventKind.INTENT_FAILED.value:
        return StatusUpdate(
            status=PaymentStatus.FAILED,
            failure_reason=event.error_message or "Payment failed",
            external_status=external_status,
        )
    if event.kind == GatewayEventKind.INTENT_CANCELED.value:
        return StatusUpdate(status=PaymentStatus.CANCELED, external_status=external_status)
    return None


async def process_webhook(*, body: bytes, signature: str | None) -> WebhookAck:
    gateway: PaymentGateway = _get_gateway_manager().gateway
    try:
        event = await gateway.verify_webhook(body=body, signature=signature)
    except SignatureInvalidError as err:
        logger.warning("webhook_rejected", reason=err.message)
        raise

    log = logger.bind(
        operation="webhook",
        provider=event.provider.value,
        event_id=event.event_id,
        kind=event.kind,
        external_intent_id=event.intent_id,
    )

    # events without an id cannot be told apart, so they skip the replay ledger
    if event.event_id and await is_webhook_event_processed(provider=event.provider.value, event_id=event.event_id):
        log.info("webhook_event_replayed")
        return WebhookAck()

    update = _webhook_status_update(event)
    if update is None or not event.intent_id:
        log.info("webhook_event_unhandled")
    else:
        record = await get_payment_attempt_by_external_intent_id(event.intent_id)
        if record is None:
            log.info("webhook_intent_unknown")
        else:
            await _apply_status_update(record, lambda _current: update, operation="webhook")

    if event.event_id:
        await mark_webhook_event_processed(
            WebhookEventCreate(
                provider=event.provider.value,
                event_id=event.event_id,
                kind=event.kind,
                intent_id=event.intent_id,
                created_at=_epoch(),
            )
        )
    return WebhookAck()


async def refund_payment(payload: RefundIn) -> RefundOut:
    record = await _get_by_intent_or_404(payload.external_intent_id)
    gateway: PaymentGateway = _get_gateway_manager().gateway
    context = {"payment_id": record.id, "external_intent_id": record.external_intent_id}

    amount_minor: int | None = None
    if payload.amount is not None:
        amount_minor = to_minor_units(payload.amount, record.currency)
        if amount_minor > record.refundable_amount_minor:
            raise PaymentValidationError(
                "Refund amount exceeds the refundable amount",
                {"amount_minor": amount_minor, "refundable_amount_minor": record.refundable_amount_minor},
            )

    refund = await _gateway_call(
        "create_refund",
        gateway.create_refund(record.external_intent_id, amount_minor=amount_minor),
        amount_minor=amount_minor,
        **context,
    )
    refunded_minor = refund.amount_minor if refund.amount_minor is not None else amount_minor
    logger.info("payment_refunded", refund_id=refund.id, refund_status=refund.status, amount_minor=refunded_minor, **context)

    def _ledger_update(current: PaymentAttemptOut) -> StatusUpdate:
        if any(entry.refund_id == refund.id for entry in current.refunds):
            return StatusUpdate(status=None)
        entry_amount = refunded_minor if refunded_minor is not None else current.refundable_amount_minor
        total = current.refunded_amount_minor + entry_amount
        entry = RefundEntry(refund_id=refund.id, amount_minor=entry_amount, status=refund.status, created_at=_epoch())
        return StatusUpdate(
            status=PaymentStatus.CANCELED if total >= current.amount_minor else None,
            refund=True,
            extra={
                "refunds": [item.model_dump() for item in [*current.refunds, entry]],
                "refunded_amount_minor": total,
            },
        )

    await _apply_status_update(record, _ledger_update, operation="refund")
    return RefundOut(refund_id=refund.id, status=refund.status)


async def get_payment_attempt(payment_id: str) -> PaymentAttemptOut:
    record = await get_payment_attempt_by_id(payment_id)
    if record is None:
        raise resource_not_found("PaymentAttempt", payment_id)
    return record


async def get_payment_attempt_by_intent_or_404(external_intent_id: str) -> PaymentAttemptOut:
    return await _get_by_intent_or_404(external_intent_id)


async def get_payments_for_user(user_id: str) -> list[PaymentAttemptOut]:
    return await list_payment_attempts_by_user(user_id)


async def create_customer(payload: CustomerIn) -> CustomerOut:
    gateway: PaymentGateway = _get_gateway_manager().gateway
    customer = await _gateway_call(
        "create_customer",
        gateway.create_customer(metadata={"user_id": payload.user_id}, email=payload.email, name=payload.name),
        user_id=payload.user_id,
    )
    return CustomerOut(customer_id=customer.id, email=customer.email, name=customer.name, metadata=customer.metadata)


async def get_customer(customer_id: str) -> CustomerOut:
    gateway: PaymentGateway = _get_gateway_manager().gateway
    customer = await _gateway_call("retrieve_customer", gateway.retrieve_customer(customer_id), customer_id=customer_id)
    return CustomerOut(customer_id=customer.id, email=customer.email, name=customer.name, metadata=customer.metadata)
