from __future__ import annotations

from typing import Any

from core.payments.types import GatewayEvent, PaymentGatewayName


def build_gateway_event(provider: PaymentGatewayName, payload: dict[str, Any]) -> GatewayEvent:
    """Normalize a Stripe-shaped event body (``{id, type, data: {object}}``)."""
    data_object = (payload.get("data") or {}).get("object") or {}
    intent_id = data_object.get("id") if data_object.get("object", "payment_intent") == "payment_intent" else None
    last_error = data_object.get("last_payment_error") or {}
    return GatewayEvent(
        provider=provider,
        event_id=str(payload["id"]) if payload.get("id") else None,
        kind=str(payload.get("type") or "unknown"),
        intent_id=intent_id,
        error_message=last_error.get("message"),
        payload=payload,
    )
