import json

from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from core.errors import NotFoundError, payment_conflict
from core.response_envelope import (
    document_created,
    document_response,
    error_payload,
    http_exception_response,
    success_payload,
)


def test_success_payload_includes_request_id():
    payload = success_payload(data={"value": 1}, message="ok", request_id="req-123")

    assert payload == {"success": True, "message": "ok", "data": {"value": 1}, "requestId": "req-123"}


def test_error_payload_omits_missing_request_id():
    payload = error_payload(message="failed", data={"code": "X"})

    assert payload["success"] is False
    assert payload["data"]["code"] == "X"
    assert "requestId" not in payload


def test_app_exception_is_rendered_with_code_and_details():
    response = http_exception_response(NotFoundError("Payment", "pi_1"))

    assert response.status_code == 404
    assert json.loads(response.body) == {
        "success": False,
        "message": "Payment not found",
        "data": {"code": "RESOURCE_NOT_FOUND", "details": {"resource": "Payment", "resource_id": "pi_1"}},
    }


def test_plain_string_detail_gets_generic_code():
    response = http_exception_response(HTTPException(status_code=405, detail="Method Not Allowed"))

    assert json.loads(response.body)["data"] == {"code": "HTTP_EXCEPTION", "details": None}


def test_decorated_routes_are_wrapped_in_the_envelope():
    app = FastAPI()

    @app.post("/things")
    @document_created(message="Thing created")
    async def create_thing():
        return {"id": "t1"}

    @app.get("/conflict")
    @document_response(message="unused")
    async def conflict():
        raise payment_conflict("Payment was modified concurrently")

    app.add_exception_handler(HTTPException, lambda request, exc: http_exception_response(exc, request))
    client = TestClient(app)

    created = client.post("/things")
    conflicted = client.get("/conflict")

    assert created.status_code == 201
    assert created.json() == {"success": True, "message": "Thing created", "data": {"id": "t1"}}
    assert conflicted.status_code == 409
    assert conflicted.json()["data"]["code"] == "PAYMENT_CONFLICT"
