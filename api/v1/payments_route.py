from __future__ import annotations

from fastapi import APIRouter, Header, Request

from core.response_envelope import document_created, document_response
from schemas.payment_schema import ConfirmIn, CreateIntentIn, CustomerIn, RefundIn
from services.payment_service import (
    confirm_payment,
    create_customer,
    create_payment_intent,
    get_customer,
    get_payment_attempt,
    get_payment_attempt_by_intent_or_404,
    get_payments_for_user,
    process_webhook,
    refund_payment,
)

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/create-intent")
@document_created(
    message="Payment intent created",
    success_example={
        "payment_id": "665f1c2e9b1e8a3d4c5b6a70",
        "client_secret": "pi_123_secret_456",
        "external_intent_id": "pi_123",
        "customer_id": "cus_123",
    },
)
async def create_intent(payload: CreateIntentIn):
    return await create_payment_intent(payload)


@router.post("/confirm")
@document_response(
    message="Payment confirmed",
    response_codes={400: "Gateway rejected the operation", 404: "Unknown payment intent"},
)
async def confirm(payload: ConfirmIn):
    return await confirm_payment(payload)


@router.post("/webhook")
@document_response(message="Webhook received", success_example={"received": True})
async def payment_webhook(request: Request, stripe_signature: str | None = Header(default=None)):
    """
    Receive signed gateway events.

    Answers 2xx for every verified event, including kinds that are ignored and
    intents this deployment does not know, so the gateway stops retrying.
    """
    body = await request.body()
    return await process_webhook(body=body, signature=stripe_signature)


@router.post("/refund")
@document_response(
    message="Payment refunded",
    response_codes={400: "Gateway rejected the operation", 404: "Unknown payment intent"},
)
async def refund(payload: RefundIn):
    return await refund_payment(payload)


@router.post("/customers")
@document_created(message="Customer created", success_example={"customer_id": "cus_123"})
async def create_gateway_customer(payload: CustomerIn):
    return await create_customer(payload)


@router.get("/customers/{customer_id}")
@document_response(message="Customer fetched")
async def fetch_gateway_customer(customer_id: str):
    return await get_customer(customer_id)


@router.get("/user/{user_id}")
@document_response(message="Payments fetched", success_example=[])
async def list_user_payments(user_id: str):
    return await get_payments_for_user(user_id)


@router.get("/intents/{external_intent_id}")
@document_response(message="Payment fetched", response_codes={404: "Unknown payment intent"})
async def fetch_payment_by_intent(external_intent_id: str):
    return await get_payment_attempt_by_intent_or_404(external_intent_id)


@router.get("/{payment_id}")
@document_response(message="Payment fetched", response_codes={404: "Unknown payment"})
async def fetch_payment(payment_id: str):
    return await get_payment_attempt(payment_id)
