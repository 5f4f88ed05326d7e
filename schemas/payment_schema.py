from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any

from bson import ObjectId
from pydantic import AliasChoices, BaseModel, Field, model_validator


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"


class CreateIntentIn(BaseModel):
    user_id: str = Field(min_length=1)
    amount: Decimal = Field(gt=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    description: str | None = None
    metadata: dict[str, Any] | None = None
    payment_method_id: str | None = None
    external_customer_id: str | None = None


class ConfirmIn(BaseModel):
    external_intent_id: str = Field(min_length=1)
    payment_method_id: str | None = None


class RefundIn(BaseModel):
    external_intent_id: str = Field(min_length=1)
    amount: Decimal | None = Field(default=None, gt=0)


class CustomerIn(BaseModel):
    user_id: str = Field(min_length=1)
    email: str | None = None
    name: str | None = None


class RefundEntry(BaseModel):
    refund_id: str
    amount_minor: int
    status: str
    created_at: int


class PaymentAttemptCreate(BaseModel):
    user_id: str
    amount: Decimal
    amount_minor: int
    currency: str
    status: PaymentStatus = PaymentStatus.PENDING
    external_intent_id: str
    external_customer_id: str | None = None
    external_status: str | None = None
    description: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    failure_reason: str | None = None
    refunded_amount_minor: int = 0
    refunds: list[RefundEntry] = Field(default_factory=list)
    processed_at: int | None = None
    created_at: int
    updated_at: int
    version: int = 0


class PaymentAttemptOut(BaseModel):
    id: str | None = Field(default=None, validation_alias=AliasChoices("_id", "id"))
    user_id: str
    amount: Decimal
    amount_minor: int
    currency: str
    status: PaymentStatus
    external_intent_id: str
    external_customer_id: str | None = None
    external_status: str | None = None
    description: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    failure_reason: str | None = None
    refunded_amount_minor: int = 0
    refunds: list[RefundEntry] = Field(default_factory=list)
    processed_at: int | None = None
    created_at: int
    updated_at: int
    version: int = 0

    @model_validator(mode="before")
    @classmethod
    def convert_objectid(cls, values):
        if isinstance(values, dict) and "_id" in values and isinstance(values["_id"], ObjectId):
            values["_id"] = str(values["_id"])
        return values

    @property
    def refundable_amount_minor(self) -> int:
        return self.amount_minor - self.refunded_amount_minor


class CreateIntentOut(BaseModel):
    payment_id: str
    client_secret: str | None
    external_intent_id: str
    customer_id: str


class ConfirmOut(BaseModel):
    payment_id: str
    status: PaymentStatus
    intent: dict[str, Any]


class RefundOut(BaseModel):
    refund_id: str
    status: str


class WebhookAck(BaseModel):
    received: bool = True


class CustomerOut(BaseModel):
    customer_id: str
    email: str | None = None
    name: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class WebhookEventCreate(BaseModel):
    provider: str
    event_id: str
    kind: str
    intent_id: str | None = None
    created_at: int
