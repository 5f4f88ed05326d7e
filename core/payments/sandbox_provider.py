from __future__ import annotations

import hashlib
import hmac
import json
import time
import uuid
from typing import Any

from pymongo import ReturnDocument

from core.database import db
from core.errors import GatewayError, SignatureInvalidError
from core.payments.provider import PaymentGateway
from core.payments.types import (
    GatewayCustomer,
    GatewayEvent,
    GatewayIntent,
    GatewayIntentRequest,
    GatewayIntentStatus,
    GatewayRefund,
    PaymentGatewayName,
)
from core.payments.webhooks import build_gateway_event

# Payment method ids with a scripted confirmation outcome; any other id succeeds.
DECLINED_PAYMENT_METHOD = "pm_card_chargeDeclined"
AUTHENTICATION_REQUIRED_PAYMENT_METHOD = "pm_card_authenticationRequired"

_CONFIRMABLE = {
    GatewayIntentStatus.REQUIRES_PAYMENT_METHOD.value,
    GatewayIntentStatus.REQUIRES_CONFIRMATION.value,
}


def _epoch() -> int:
    return int(time.time())


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:24]}"


def _intent_view(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": row["_id"],
        "object": "payment_intent",
        "amount": row.get("amount_minor"),
        "amount_refunded": row.get("amount_refunded", 0),
        "currency": row.get("currency"),
        "customer": row.get("customer"),
        "description": row.get("description"),
        "metadata": row.get("metadata") or {},
        "payment_method": row.get("payment_method"),
        "status": row.get("status"),
        "client_secret": row.get("client_secret"),
        "last_payment_error": row.get("last_payment_error"),
        "created": row.get("created_at"),
    }


class SandboxPaymentGateway(PaymentGateway):
    """Gateway double backed by Mongo for development and test environments.

    Mirrors the Stripe intent lifecycle closely enough for the reconciliation
    flows: confirmation outcomes are driven by the payment method id, refunds
    are only accepted on succeeded intents, and webhooks are signed with the
    same ``t=<timestamp>,v1=<hmac>`` header scheme.
    """

    provider_name = PaymentGatewayName.SANDBOX.value

    def __init__(self, *, webhook_secret: str | None, tolerance_seconds: int = 300) -> None:
        if not webhook_secret:
            raise RuntimeError("SANDBOX_WEBHOOK_SECRET is required for SandboxPaymentGateway")
        self._webhook_secret = webhook_secret
        self._tolerance_seconds = tolerance_seconds

    async def _find_intent(self, intent_id: str) -> dict[str, Any]:
        row = await db.sandbox_intents.find_one({"_id": intent_id})
        if row is None:
            raise GatewayError(f"No such payment_intent: '{intent_id}'", raw_kind="resource_missing")
        return row

    async def create_customer(
        self,
        *,
        metadata: dict[str, Any],
        email: str | None = None,
        name: str | None = None,
    ) -> GatewayCustomer:
        customer_id = _new_id("cus")
        await db.sandbox_customers.insert_one(
            {
                "_id": customer_id,
                "email": email,
                "name": name,
                "metadata": metadata,
                "created_at": _epoch(),
            }
        )
        return GatewayCustomer(id=customer_id, email=email, name=name, metadata=metadata)

    async def retrieve_customer(self, customer_id: str) -> GatewayCustomer:
        row = await db.sandbox_customers.find_one({"_id": customer_id})
        if row is None:
            raise GatewayError(f"No such customer: '{customer_id}'", raw_kind="resource_missing")
        return GatewayCustomer(
            id=row["_id"],
            email=row.get("email"),
            name=row.get("name"),
            metadata=row.get("metadata") or {},
        )

    async def create_intent(self, payload: GatewayIntentRequest) -> GatewayIntent:
        intent_id = _new_id("pi")
        status = (
            GatewayIntentStatus.REQUIRES_CONFIRMATION
            if payload.payment_method_id
            else GatewayIntentStatus.REQUIRES_PAYMENT_METHOD
        )
        row = {
            "_id": intent_id,
            "amount_minor": payload.amount_minor,
            "amount_refunded": 0,
            "currency": payload.currency.lower(),
            "customer": payload.customer_id,
            "description": payload.description,
            "metadata": payload.metadata or {},
            "payment_method": payload.payment_method_id,
            "status": status.value,
            "client_secret": f"{intent_id}_secret_{uuid.uuid4().hex[:16]}",
            "last_payment_error": None,
            "created_at": _epoch(),
        }
        await db.sandbox_intents.insert_one(row)
        return self._intent(row)

    async def retrieve_intent(self, intent_id: str) -> GatewayIntent:
        return self._intent(await self._find_intent(intent_id))

    async def confirm_intent(self, intent_id: str, *, payment_method_id: str | None = None) -> GatewayIntent:
        row = await self._find_intent(intent_id)
        if row.get("status") not in _CONFIRMABLE:
            raise GatewayError(
                f"PaymentIntent has status {row.get('status')} and cannot be confirmed",
                raw_kind="payment_intent_unexpected_state",
            )

        payment_method = payment_method_id or row.get("payment_method")
        last_payment_error = None
        if not payment_method:
            status = GatewayIntentStatus.REQUIRES_PAYMENT_METHOD
            last_payment_error = {"message": "A payment method is required to confirm this PaymentIntent."}
        elif payment_method == DECLINED_PAYMENT_METHOD:
            status = GatewayIntentStatus.REQUIRES_PAYMENT_METHOD
            last_payment_error = {"message": "Your card was declined."}
        elif payment_method == AUTHENTICATION_REQUIRED_PAYMENT_METHOD:
            status = GatewayIntentStatus.REQUIRES_ACTION
        else:
            status = GatewayIntentStatus.SUCCEEDED

        updated = await db.sandbox_intents.find_one_and_update(
            {"_id": intent_id},
            {
                "$set": {
                    "status": status.value,
                    "payment_method": payment_method,
                    "last_payment_error": last_payment_error,
                }
            },
            return_document=ReturnDocument.AFTER,
        )
        return self._intent(updated)

    async def create_refund(self, intent_id: str, *, amount_minor: int | None = None) -> GatewayRefund:
        row = await self._find_intent(intent_id)
        if row.get("status") != GatewayIntentStatus.SUCCEEDED.value:
            raise GatewayError(
                f"PaymentIntent {intent_id} has not succeeded and cannot be refunded",
                raw_kind="charge_not_refundable",
            )

        already_refunded = int(row.get("amount_refunded", 0))
        remaining = int(row.get("amount_minor", 0)) - already_refunded
        refund_amount = remaining if amount_minor is None else amount_minor
        if refund_amount <= 0 or refund_amount > remaining:
            raise GatewayError(
                f"Refund amount ({refund_amount}) is greater than unrefunded amount ({remaining})",
                raw_kind="amount_too_large",
            )

        # the increment only lands if no other refund was booked since the read
        reserved = await db.sandbox_intents.find_one_and_update(
            {
                "_id": intent_id,
                "status": GatewayIntentStatus.SUCCEEDED.value,
                "amount_refunded": already_refunded,
            },
            {"$inc": {"amount_refunded": refund_amount}},
            return_document=ReturnDocument.AFTER,
        )
        if reserved is None:
            raise GatewayError(
                f"PaymentIntent {intent_id} was refunded concurrently, retry the request",
                raw_kind="lock_timeout",
            )

        refund_id = _new_id("re")
        refund_row = {
            "_id": refund_id,
            "payment_intent": intent_id,
            "amount_minor": refund_amount,
            "status": "succeeded",
            "created_at": _epoch(),
        }
        await db.sandbox_refunds.insert_one(refund_row)
        return GatewayRefund(
            id=refund_id,
            status="succeeded",
            amount_minor=refund_amount,
            raw={"id": refund_id, "object": "refund", "payment_intent": intent_id, "amount": refund_amount, "status": "succeeded"},
        )

    def sign_payload(self, body: bytes, *, timestamp: int | None = None) -> str:
        issued_at = timestamp if timestamp is not None else _epoch()
        signed = f"{issued_at}.".encode("utf-8") + body
        digest = hmac.new(self._webhook_secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
        return f"t={issued_at},v1={digest}"

    async def verify_webhook(self, *, body: bytes, signature: str | None) -> GatewayEvent:
        if not signature:
            raise SignatureInvalidError("Missing sandbox webhook signature")

        parts: dict[str, list[str]] = {}
        for item in signature.split(","):
            key, _, value = item.strip().partition("=")
            if value:
                parts.setdefault(key, []).append(value)

        try:
            issued_at = int(parts["t"][0])
        except (KeyError, ValueError) as err:
            raise SignatureInvalidError("Malformed sandbox webhook signature header") from err

        if abs(_epoch() - issued_at) > self._tolerance_seconds:
            raise SignatureInvalidError(
                "Sandbox webhook timestamp outside the tolerance zone",
                details={"timestamp": issued_at},
            )

        expected = self.sign_payload(body, timestamp=issued_at).split("v1=", 1)[1]
        if not any(hmac.compare_digest(expected, candidate) for candidate in parts.get("v1", [])):
            raise SignatureInvalidError("Invalid sandbox webhook signature")

        try:
            payload = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as err:
            raise SignatureInvalidError("Invalid sandbox webhook payload", details=str(err)) from err

        return build_gateway_event(PaymentGatewayName.SANDBOX, payload)

    @staticmethod
    def _intent(row: dict[str, Any]) -> GatewayIntent:
        return GatewayIntent(
            id=row["_id"],
            status=str(row.get("status")),
            client_secret=row.get("client_secret"),
            raw=_intent_view(row),
        )
