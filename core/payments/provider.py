from __future__ import annotations

from typing import Any, Protocol

from core.payments.types import (
    GatewayCustomer,
    GatewayEvent,
    GatewayIntent,
    GatewayIntentRequest,
    GatewayRefund,
)


class PaymentGateway(Protocol):
    provider_name: str

    async def create_customer(
        self,
        *,
        metadata: dict[str, Any],
        email: str | None = None,
        name: str | None = None,
    ) -> GatewayCustomer:
        ...

    async def retrieve_customer(self, customer_id: str) -> GatewayCustomer:
        ...

    async def create_intent(self, payload: GatewayIntentRequest) -> GatewayIntent:
        ...

    async def retrieve_intent(self, intent_id: str) -> GatewayIntent:
        ...

    async def confirm_intent(self, intent_id: str, *, payment_method_id: str | None = None) -> GatewayIntent:
        ...

    async def create_refund(self, intent_id: str, *, amount_minor: int | None = None) -> GatewayRefund:
        ...

    async def verify_webhook(self, *, body: bytes, signature: str | None) -> GatewayEvent:
        ...
