from __future__ import annotations

from enum import Enum
from typing import Any

from fastapi import HTTPException, status


class ErrorCode(str, Enum):
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    PAYMENT_PROVIDER_ERROR = "PAYMENT_PROVIDER_ERROR"
    PAYMENT_WEBHOOK_INVALID = "PAYMENT_WEBHOOK_INVALID"
    PAYMENT_CONFLICT = "PAYMENT_CONFLICT"


class AppException(HTTPException):
    def __init__(
        self,
        *,
        status_code: int,
        code: ErrorCode,
        message: str,
        details: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        detail = {
            "message": message,
            "code": code.value,
            "details": details,
        }
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.code = code
        self.message = message
        self.details = details


class PaymentValidationError(AppException):
    def __init__(self, message: str, details: Any | None = None) -> None:
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            code=ErrorCode.VALIDATION_FAILED,
            message=message,
            details=details,
        )


class NotFoundError(AppException):
    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        details = {"resource": resource}
        if resource_id:
            details["resource_id"] = resource_id
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            code=ErrorCode.RESOURCE_NOT_FOUND,
            message=f"{resource} not found",
            details=details,
        )


class GatewayError(AppException):
    """Failure reported by the payment gateway, including network failures.

    ``raw_kind`` keeps the gateway's own error classification (for Stripe the
    error ``code`` or exception class) so it can be logged without leaking SDK
    types into the rest of the application.
    """

    def __init__(self, message: str, *, raw_kind: str | None = None, operation: str | None = None) -> None:
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            code=ErrorCode.PAYMENT_PROVIDER_ERROR,
            message=f"Payment operation failed: {message}",
            details={"raw_kind": raw_kind, "operation": operation, "gateway_message": message},
        )
        self.gateway_message = message
        self.raw_kind = raw_kind
        self.operation = operation


class SignatureInvalidError(AppException):
    def __init__(self, message: str = "Invalid webhook signature", details: Any | None = None) -> None:
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            code=ErrorCode.PAYMENT_WEBHOOK_INVALID,
            message=message,
            details=details,
        )


def resource_not_found(resource: str, resource_id: str | None = None) -> NotFoundError:
    return NotFoundError(resource, resource_id)


def payment_conflict(message: str, details: Any | None = None) -> AppException:
    return AppException(
        status_code=status.HTTP_409_CONFLICT,
        code=ErrorCode.PAYMENT_CONFLICT,
        message=message,
        details=details,
    )


def gateway_not_configured(details: Any | None = None) -> AppException:
    return AppException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        code=ErrorCode.PAYMENT_PROVIDER_ERROR,
        message="Payment gateway is not configured",
        details=details,
    )
