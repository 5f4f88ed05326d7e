from core.payments.manager import GatewayManager
from core.payments.provider import PaymentGateway
from core.payments.types import (
    GatewayCustomer,
    GatewayEvent,
    GatewayEventKind,
    GatewayIntent,
    GatewayIntentRequest,
    GatewayIntentStatus,
    GatewayRefund,
    PaymentGatewayName,
)

__all__ = [
    "GatewayCustomer",
    "GatewayEvent",
    "GatewayEventKind",
    "GatewayIntent",
    "GatewayIntentRequest",
    "GatewayIntentStatus",
    "GatewayManager",
    "GatewayRefund",
    "PaymentGateway",
    "PaymentGatewayName",
]
