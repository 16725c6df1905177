"""
POS Node — Order schemas
"""
import json
from datetime import datetime

from pydantic import Field, field_validator

from posnode.models.order import OrderStatus
from posnode.schemas.base import CamelModel


class OrderItemIn(CamelModel):
    product_id: str = Field(..., examples=["P1"])
    quantity: int = Field(..., ge=1)


class PaymentIn(CamelModel):
    amount: float = Field(..., gt=0)
    method: str = Field("CASH", max_length=50)
    cashier: str | None = None


class OrderCreate(CamelModel):
    waiter_id: str | None = None
    customer: str | None = Field(None, max_length=255)
    items: list[OrderItemIn] = Field(..., min_length=1)
    masajista_ids: list[str] | None = None


class OrderEdit(CamelModel):
    items: list[OrderItemIn] | None = Field(None, min_length=1)
    payment: PaymentIn | None = None
    status: OrderStatus | None = None
    edited_by: str | None = None
    user_id: str | None = None


class OrderCancel(CamelModel):
    reason: str | None = None
    actor: str | None = None
    user_id: str | None = None


class OrderItemRead(CamelModel):
    id: str
    product_id: str
    quantity: int
    price: float


class PaymentRead(CamelModel):
    id: str
    order_id: str
    amount: float
    method: str
    cashier: str | None = None
    created_at: datetime | None = None


class OrderRead(CamelModel):
    id: str
    custom_id: str
    status: OrderStatus
    total_amount: float
    paid_amount: float
    customer: str
    waiter_id: str | None = None
    masajista_ids: list[str] | None = None
    edited_by: str | None = None
    cancel_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    items: list[OrderItemRead] = []
    payments: list[PaymentRead] = []

    @field_validator("masajista_ids", mode="before")
    @classmethod
    def _decode_masajistas(cls, value):
        if isinstance(value, str):
            return json.loads(value) if value else None
        return value


class AuditLogRead(CamelModel):
    id: str
    action: str
    details: str
    user_id: str | None = None
    timestamp: datetime | None = None
