from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()

SUPPORTED_PAYMENT_GATEWAYS = {"stripe", "sandbox"}
SUPPORTED_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR"}


def _split_csv(value: str | None) -> tuple[str, ...]:
    if not value:
        return tuple()
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _env(name: str) -> str | None:
    raw_value = os.getenv(name)
    if raw_value is None:
        return None
    normalized = raw_value.strip()
    return normalized or None


def collect_missing_required_env_vars() -> list[str]:
    missing: list[str] = []

    for var_name in ("MONGO_URL", "DB_NAME"):
        if _env(var_name) is None:
            missing.append(var_name)

    payment_gateway = (_env("PAYMENT_GATEWAY") or "stripe").lower()
    if payment_gateway == "stripe":
        for var_name in ("STRIPE_SECRET_KEY", "STRIPE_WEBHOOK_SECRET"):
            if _env(var_name) is None:
                missing.append(var_name)
    elif payment_gateway == "sandbox":
        if _env("SANDBOX_WEBHOOK_SECRET") is None:
            missing.append("SANDBOX_WEBHOOK_SECRET")

    return sorted(set(missing))


def collect_invalid_env_values() -> list[str]:
    invalid_values: list[str] = []

    payment_gateway = (_env("PAYMENT_GATEWAY") or "stripe").lower()
    if payment_gateway not in SUPPORTED_PAYMENT_GATEWAYS:
        invalid_values.append("PAYMENT_GATEWAY must be one of: sandbox, stripe")

    timeout = _env("GATEWAY_TIMEOUT_SECONDS")
    if timeout is not None:
        try:
            if float(timeout) <= 0:
                raise ValueError("must be positive")
        except ValueError:
            invalid_values.append("GATEWAY_TIMEOUT_SECONDS must be a positive number")

    retries = _env("GATEWAY_MAX_NETWORK_RETRIES")
    if retries is not None:
        try:
            if int(retries) < 0:
                raise ValueError("must not be negative")
        except ValueError:
            invalid_values.append("GATEWAY_MAX_NETWORK_RETRIES must be a non-negative integer")

    tolerance = _env("WEBHOOK_TOLERANCE_SECONDS")
    if tolerance is not None:
        try:
            if int(tolerance) <= 0:
                raise ValueError("must be positive")
        except ValueError:
            invalid_values.append("WEBHOOK_TOLERANCE_SECONDS must be a positive integer")

    log_level = (_env("LOG_LEVEL") or "INFO").upper()
    if log_level not in SUPPORTED_LOG_LEVELS:
        invalid_values.append("LOG_LEVEL must be one of: DEBUG, ERROR, INFO, WARNING")

    return invalid_values


def validate_required_environment() -> None:
    missing_vars = collect_missing_required_env_vars()
    invalid_values = collect_invalid_env_values()
    if not missing_vars and not invalid_values:
        return

    message_lines = ["Application startup blocked by invalid environment configuration."]
    if missing_vars:
        message_lines.append("")
        message_lines.append("Missing required environment variables:")
        message_lines.extend(f"- {name}" for name in missing_vars)
    if invalid_values:
        message_lines.append("")
        message_lines.append("Invalid environment values:")
        message_lines.extend(f"- {message}" for message in invalid_values)
    raise RuntimeError("\n".join(message_lines))


@dataclass(frozen=True)
class Settings:
    env: str
    mongo_url: str
    db_name: str
    cors_origins: tuple[str, ...]
    debug_include_error_details: bool
    log_level: str
    payment_gateway: str
    stripe_secret_key: str | None
    stripe_webhook_secret: str | None
    sandbox_webhook_secret: str | None
    gateway_timeout_seconds: float
    gateway_max_network_retries: int
    webhook_tolerance_seconds: int

    @property
    def is_production(self) -> bool:
        return self.env.lower() == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    validate_required_environment()

    return Settings(
        env=os.getenv("ENV", "development"),
        mongo_url=_env("MONGO_URL") or "",
        db_name=_env("DB_NAME") or "",
        cors_origins=_split_csv(os.getenv("CORS_ORIGINS")),
        debug_include_error_details=os.getenv("DEBUG_INCLUDE_ERROR_DETAILS", "false").lower()
        in {"1", "true", "yes"},
        log_level=(_env("LOG_LEVEL") or "INFO").upper(),
        payment_gateway=(_env("PAYMENT_GATEWAY") or "stripe").lower(),
        stripe_secret_key=_env("STRIPE_SECRET_KEY"),
        stripe_webhook_secret=_env("STRIPE_WEBHOOK_SECRET"),
        sandbox_webhook_secret=_env("SANDBOX_WEBHOOK_SECRET"),
        gateway_timeout_seconds=float(_env("GATEWAY_TIMEOUT_SECONDS") or "20"),
        gateway_max_network_retries=int(_env("GATEWAY_MAX_NETWORK_RETRIES") or "2"),
        webhook_tolerance_seconds=int(_env("WEBHOOK_TOLERANCE_SECONDS") or "300"),
    )
