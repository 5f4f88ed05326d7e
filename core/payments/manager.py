from __future__ import annotations

from threading import Lock

from core.payments.provider import PaymentGateway
from core.payments.sandbox_provider import SandboxPaymentGateway
from core.payments.stripe_provider import StripePaymentGateway
from core.settings import get_settings

DEFAULT_CALL_TIMEOUT_SECONDS = 60.0


class GatewayManager:
    _instance: "GatewayManager | None" = None
    _lock = Lock()

    def __init__(self, gateway: PaymentGateway, call_timeout_seconds: float = DEFAULT_CALL_TIMEOUT_SECONDS) -> None:
        self._gateway = gateway
        self._call_timeout_seconds = call_timeout_seconds

    @classmethod
    def configure(
        cls,
        gateway: PaymentGateway,
        call_timeout_seconds: float = DEFAULT_CALL_TIMEOUT_SECONDS,
    ) -> "GatewayManager":
        with cls._lock:
            cls._instance = cls(gateway=gateway, call_timeout_seconds=call_timeout_seconds)
            return cls._instance

    @classmethod
    def configure_from_settings(cls) -> "GatewayManager":
        settings = get_settings()

        if settings.payment_gateway == "sandbox":
            gateway: PaymentGateway = SandboxPaymentGateway(
                webhook_secret=settings.sandbox_webhook_secret,
                tolerance_seconds=settings.webhook_tolerance_seconds,
            )
        else:
            gateway = StripePaymentGateway(
                secret_key=settings.stripe_secret_key,
                webhook_secret=settings.stripe_webhook_secret,
                timeout_seconds=settings.gateway_timeout_seconds,
                max_network_retries=settings.gateway_max_network_retries,
            )

        # every SDK attempt is bounded by the HTTP timeout; the overall call by all attempts
        call_timeout = settings.gateway_timeout_seconds * (settings.gateway_max_network_retries + 1)
        return cls.configure(gateway, call_timeout_seconds=call_timeout)

    @classmethod
    def get_instance(cls) -> "GatewayManager":
        if cls._instance is None:
            raise RuntimeError("GatewayManager is not configured")
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        with cls._lock:
            cls._instance = None

    @property
    def gateway(self) -> PaymentGateway:
        return self._gateway

    @property
    def call_timeout_seconds(self) -> float:
        return self._call_timeout_seconds
