from __future__ import annotations

import asyncio
from typing import Any, Callable

import stripe

from core.errors import GatewayError, SignatureInvalidError
from core.payments.provider import PaymentGateway
from core.payments.types import (
    GatewayCustomer,
    GatewayEvent,
    GatewayIntent,
    GatewayIntentRequest,
    GatewayRefund,
    PaymentGatewayName,
)
from core.payments.webhooks import build_gateway_event


def _to_dict(stripe_object: Any) -> dict[str, Any]:
    # StripeObject is not a dict subclass; to_dict() converts nested objects too
    return stripe_object.to_dict()


class StripePaymentGateway(PaymentGateway):
    provider_name = PaymentGatewayName.STRIPE.value

    def __init__(
        self,
        *,
        secret_key: str | None,
        webhook_secret: str | None,
        timeout_seconds: float = 20.0,
        max_network_retries: int = 2,
    ) -> None:
        if not secret_key:
            raise RuntimeError("STRIPE_SECRET_KEY is required for StripePaymentGateway")
        if not webhook_secret:
            raise RuntimeError("STRIPE_WEBHOOK_SECRET is required for StripePaymentGateway")

        self._webhook_secret = webhook_secret
        self._client = stripe.StripeClient(
            secret_key,
            http_client=stripe.RequestsClient(timeout=timeout_seconds),
            max_network_retries=max_network_retries,
        )

    async def _call(self, operation: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except stripe.StripeError as err:
            raw_kind = getattr(err, "code", None) or type(err).__name__
            message = getattr(err, "user_message", None) or str(err) or type(err).__name__
            raise GatewayError(message, raw_kind=raw_kind, operation=operation) from err

    async def create_customer(
        self,
        *,
        metadata: dict[str, Any],
        email: str | None = None,
        name: str | None = None,
    ) -> GatewayCustomer:
        params: dict[str, Any] = {"metadata": metadata}
        if email:
            params["email"] = email
        if name:
            params["name"] = name
        customer = await self._call("create_customer", self._client.customers.create, params=params)
        return self._customer(customer)

    async def retrieve_customer(self, customer_id: str) -> GatewayCustomer:
        customer = await self._call("retrieve_customer", self._client.customers.retrieve, customer_id)
        return self._customer(customer)

    async def create_intent(self, payload: GatewayIntentRequest) -> GatewayIntent:
        params: dict[str, Any] = {
            "amount": payload.amount_minor,
            "currency": payload.currency.lower(),
            "customer": payload.customer_id,
            "metadata": payload.metadata or {},
            "automatic_payment_methods": {"enabled": True},
        }
        if payload.description:
            params["description"] = payload.description
        if payload.payment_method_id:
            params["payment_method"] = payload.payment_method_id
        intent = await self._call("create_intent", self._client.payment_intents.create, params=params)
        return self._intent(intent)

    async def retrieve_intent(self, intent_id: str) -> GatewayIntent:
        intent = await self._call("retrieve_intent", self._client.payment_intents.retrieve, intent_id)
        return self._intent(intent)

    async def confirm_intent(self, intent_id: str, *, payment_method_id: str | None = None) -> GatewayIntent:
        params: dict[str, Any] = {}
        if payment_method_id:
            params["payment_method"] = payment_method_id
        intent = await self._call(
            "confirm_intent",
            self._client.payment_intents.confirm,
            intent_id,
            params=params,
        )
        return self._intent(intent)

    async def create_refund(self, intent_id: str, *, amount_minor: int | None = None) -> GatewayRefund:
        params: dict[str, Any] = {"payment_intent": intent_id}
        if amount_minor is not None:
            params["amount"] = amount_minor
        refund = _to_dict(await self._call("create_refund", self._client.refunds.create, params=params))
        return GatewayRefund(
            id=refund["id"],
            status=str(refund.get("status")),
            amount_minor=refund.get("amount"),
            raw=refund,
        )

    async def verify_webhook(self, *, body: bytes, signature: str | None) -> GatewayEvent:
        if not signature:
            raise SignatureInvalidError("Missing Stripe webhook signature")

        try:
            event = self._client.construct_event(body, signature, self._webhook_secret)
        except stripe.SignatureVerificationError as err:
            raise SignatureInvalidError("Invalid Stripe webhook signature", details=str(err)) from err
        except ValueError as err:
            raise SignatureInvalidError("Invalid Stripe webhook payload", details=str(err)) from err

        return build_gateway_event(PaymentGatewayName.STRIPE, _to_dict(event))

    @staticmethod
    def _intent(intent: Any) -> GatewayIntent:
        raw = _to_dict(intent)
        return GatewayIntent(
            id=raw["id"],
            status=str(raw.get("status")),
            client_secret=raw.get("client_secret"),
            raw=raw,
        )

    @staticmethod
    def _customer(customer: Any) -> GatewayCustomer:
        raw = _to_dict(customer)
        return GatewayCustomer(
            id=raw["id"],
            email=raw.get("email"),
            name=raw.get("name"),
            metadata=raw.get("metadata") or {},
        )
