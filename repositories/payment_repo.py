from __future__ import annotations

import time

from bson import ObjectId
from pymongo import DESCENDING, ReturnDocument

from core.database import db
from schemas.payment_schema import PaymentAttemptCreate, PaymentAttemptOut, WebhookEventCreate

_PAYMENT_INDEXES_READY = False


async def _ensure_payment_indexes() -> None:
    global _PAYMENT_INDEXES_READY
    if _PAYMENT_INDEXES_READY:
        return
    await db.payment_attempts.create_index(
        "external_intent_id",
        name="idx_payment_external_intent_id_unique",
        unique=True,
    )
    await db.payment_attempts.create_index(
        [("user_id", 1), ("created_at", -1)],
        name="idx_payment_user_id_created_at",
    )
    await db.payment_webhook_events.create_index(
        [("provider", 1), ("event_id", 1)],
        name="idx_payment_webhook_provider_event_unique",
        unique=True,
    )
    _PAYMENT_INDEXES_READY = True


def _id_filter(payment_id: str) -> dict | None:
    if not ObjectId.is_valid(payment_id):
        return None
    return {"_id": ObjectId(payment_id)}


async def create_payment_attempt(payload: PaymentAttemptCreate) -> PaymentAttemptOut:
    await _ensure_payment_indexes()
    result = await db.payment_attempts.insert_one(payload.model_dump(mode="json"))
    stored = await db.payment_attempts.find_one({"_id": result.inserted_id})
    return PaymentAttemptOut(**stored)  # type: ignore


async def get_payment_attempt_by_id(payment_id: str) -> PaymentAttemptOut | None:
    await _ensure_payment_indexes()
    id_filter = _id_filter(payment_id)
    if id_filter is None:
        return None
    row = await db.payment_attempts.find_one(id_filter)
    if row is None:
        return None
    return PaymentAttemptOut(**row)


async def get_payment_attempt_by_external_intent_id(external_intent_id: str) -> PaymentAttemptOut | None:
    await _ensure_payment_indexes()
    row = await db.payment_attempts.find_one({"external_intent_id": external_intent_id})
    if row is None:
        return None
    return PaymentAttemptOut(**row)


async def list_payment_attempts_by_user(user_id: str) -> list[PaymentAttemptOut]:
    await _ensure_payment_indexes()
    cursor = db.payment_attempts.find({"user_id": user_id}).sort([("created_at", DESCENDING), ("_id", DESCENDING)])
    items: list[PaymentAttemptOut] = []
    async for row in cursor:
        items.append(PaymentAttemptOut(**row))
    return items


async def update_payment_attempt(
    *,
    payment_id: str,
    expected_version: int,
    update_dict: dict,
) -> PaymentAttemptOut | None:
    """Compare-and-set write; returns None when the record moved past ``expected_version``."""
    await _ensure_payment_indexes()
    id_filter = _id_filter(payment_id)
    if id_filter is None:
        return None
    row = await db.payment_attempts.find_one_and_update(
        {**id_filter, "version": expected_version},
        {
            "$set": {**update_dict, "updated_at": int(time.time())},
            "$inc": {"version": 1},
        },
        return_document=ReturnDocument.AFTER,
    )
    if row is None:
        return None
    return PaymentAttemptOut(**row)


async def is_webhook_event_processed(provider: str, event_id: str) -> bool:
    await _ensure_payment_indexes()
    row = await db.payment_webhook_events.find_one({"provider": provider, "event_id": event_id})
    return row is not None


async def mark_webhook_event_processed(payload: WebhookEventCreate) -> None:
    await _ensure_payment_indexes()
    await db.payment_webhook_events.update_one(
        {"provider": payload.provider, "event_id": payload.event_id},
        {"$setOnInsert": payload.model_dump()},
        upsert=True,
    )
