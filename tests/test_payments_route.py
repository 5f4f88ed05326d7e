from __future__ import annotations

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient

from api.v1 import payments_route
from core.errors import NotFoundError, SignatureInvalidError
from core.response_envelope import apply_response_documentation, error_response, http_exception_response
from core.validation_errors import format_validation_error_details
from schemas.payment_schema import (
    CreateIntentOut,
    PaymentAttemptOut,
    PaymentStatus,
    RefundOut,
    WebhookAck,
)


def _build_app() -> FastAPI:
    app = FastAPI()

    @app.exception_handler(HTTPException)
    async def _http_exception(request: Request, exc: HTTPException):
        return http_exception_response(exc=exc, request=request)

    @app.exception_handler(RequestValidationError)
    async def _validation_exception(request: Request, exc: RequestValidationError):
        return error_response(
            status_code=422,
            message="Validation error",
            data={"code": "VALIDATION_FAILED", "details": format_validation_error_details(exc.errors())},
        )

    app.include_router(payments_route.router, prefix="/v1")
    apply_response_documentation(app)
    return app


def _payment_attempt(**overrides) -> PaymentAttemptOut:
    payload = {
        "_id": "665f1c2e9b1e8a3d4c5b6a70",
        "user_id": "u1",
        "amount": "100",
        "amount_minor": 10000,
        "currency": "EUR",
        "status": PaymentStatus.SUCCEEDED,
        "external_intent_id": "pi_1",
        "created_at": 100,
        "updated_at": 100,
    }
    payload.update(overrides)
    return PaymentAttemptOut(**payload)


def test_create_intent_returns_201_envelope(monkeypatch):
    async def _stub_create(payload):
        assert payload.user_id == "u1"
        assert str(payload.amount) == "100.00"
        return CreateIntentOut(
            payment_id="665f1c2e9b1e8a3d4c5b6a70",
            client_secret="pi_1_secret",
            external_intent_id="pi_1",
            customer_id="cus_1",
        )

    monkeypatch.setattr(payments_route, "create_payment_intent", _stub_create)
    client = TestClient(_build_app())

    response = client.post("/v1/payments/create-intent", json={"user_id": "u1", "amount": "100.00", "currency": "EUR"})

    assert response.status_code == 201
    payload = response.json()
    assert payload["success"] is True
    assert payload["data"]["external_intent_id"] == "pi_1"
    assert payload["data"]["client_secret"] == "pi_1_secret"


def test_create_intent_rejects_non_positive_amount(monkeypatch):
    async def _stub_create(payload):
        raise AssertionError("service must not be reached")

    monkeypatch.setattr(payments_route, "create_payment_intent", _stub_create)
    client = TestClient(_build_app())

    response = client.post("/v1/payments/create-intent", json={"user_id": "u1", "amount": 0})

    assert response.status_code == 422
    payload = response.json()
    assert payload["success"] is False
    assert payload["data"]["code"] == "VALIDATION_FAILED"
    assert payload["data"]["details"]["fieldErrors"][0]["path"] == "amount"


def test_webhook_passes_raw_body_and_signature_header(monkeypatch):
    captured = {}

    async def _stub_process(*, body: bytes, signature: str | None):
        captured["body"] = body
        captured["signature"] = signature
        return WebhookAck()

    monkeypatch.setattr(payments_route, "process_webhook", _stub_process)
    client = TestClient(_build_app())

    response = client.post(
        "/v1/payments/webhook",
        content=b'{"id":"evt_1"}',
        headers={"Stripe-Signature": "t=1,v1=abc", "Content-Type": "application/json"},
    )

    assert response.status_code == 200
    assert response.json()["data"] == {"received": True}
    assert captured == {"body": b'{"id":"evt_1"}', "signature": "t=1,v1=abc"}


def test_webhook_with_bad_signature_is_rejected(monkeypatch):
    async def _stub_process(*, body: bytes, signature: str | None):
        raise SignatureInvalidError("Invalid Stripe webhook signature")

    monkeypatch.setattr(payments_route, "process_webhook", _stub_process)
    client = TestClient(_build_app())

    response = client.post("/v1/payments/webhook", content=b"{}")

    assert response.status_code == 400
    payload = response.json()
    assert payload["message"] == "Invalid Stripe webhook signature"
    assert payload["data"]["code"] == "PAYMENT_WEBHOOK_INVALID"


def test_refund_returns_refund_id(monkeypatch):
    async def _stub_refund(payload):
        assert payload.external_intent_id == "pi_1"
        assert payload.amount is None
        return RefundOut(refund_id="re_1", status="succeeded")

    monkeypatch.setattr(payments_route, "refund_payment", _stub_refund)
    client = TestClient(_build_app())

    response = client.post("/v1/payments/refund", json={"external_intent_id": "pi_1"})

    assert response.status_code == 200
    assert response.json()["data"] == {"refund_id": "re_1", "status": "succeeded"}


def test_fetch_payment_by_intent_returns_record(monkeypatch):
    async def _stub_get(external_intent_id: str):
        assert external_intent_id == "pi_1"
        return _payment_attempt()

    monkeypatch.setattr(payments_route, "get_payment_attempt_by_intent_or_404", _stub_get)
    client = TestClient(_build_app())

    response = client.get("/v1/payments/intents/pi_1")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["id"] == "665f1c2e9b1e8a3d4c5b6a70"
    assert data["status"] == "succeeded"
    assert data["amount"] == "100"


def test_fetch_unknown_payment_is_404(monkeypatch):
    async def _stub_get(payment_id: str):
        raise NotFoundError("Payment", payment_id)

    monkeypatch.setattr(payments_route, "get_payment_attempt", _stub_get)
    client = TestClient(_build_app())

    response = client.get("/v1/payments/665f1c2e9b1e8a3d4c5b6a99")

    assert response.status_code == 404
    assert response.json()["data"]["code"] == "RESOURCE_NOT_FOUND"


def test_user_payments_route_is_not_shadowed_by_payment_id(monkeypatch):
    async def _stub_list(user_id: str):
        return [_payment_attempt(user_id=user_id)]

    monkeypatch.setattr(payments_route, "get_payments_for_user", _stub_list)
    client = TestClient(_build_app())

    response = client.get("/v1/payments/user/u7")

    assert response.status_code == 200
    assert [item["user_id"] for item in response.json()["data"]] == ["u7"]
