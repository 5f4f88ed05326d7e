from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class PaymentGatewayName(str, Enum):
    STRIPE = "stripe"
    SANDBOX = "sandbox"


class GatewayIntentStatus(str, Enum):
    REQUIRES_PAYMENT_METHOD = "requires_payment_method"
    REQUIRES_CONFIRMATION = "requires_confirmation"
    REQUIRES_ACTION = "requires_action"
    PROCESSING = "processing"
    REQUIRES_CAPTURE = "requires_capture"
    CANCELED = "canceled"
    SUCCEEDED = "succeeded"


class GatewayEventKind(str, Enum):
    INTENT_SUCCEEDED = "payment_intent.succeeded"
    INTENT_FAILED = "payment_intent.payment_failed"
    INTENT_CANCELED = "payment_intent.canceled"


@dataclass(frozen=True)
class GatewayIntentRequest:
    amount_minor: int
    currency: str
    customer_id: str
    description: str | None = None
    metadata: dict[str, Any] | None = None
    payment_method_id: str | None = None


@dataclass(frozen=True)
class GatewayIntent:
    id: str
    status: str
    client_secret: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GatewayCustomer:
    id: str
    email: str | None = None
    name: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GatewayRefund:
    id: str
    status: str
    amount_minor: int | None = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GatewayEvent:
    provider: PaymentGatewayName
    event_id: str | None
    kind: str
    intent_id: str | None
    error_message: str | None
    payload: dict[str, Any]
