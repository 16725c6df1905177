"""
POS Node — Orders API

Flow for every mutation:
  1. Store operation commits the order rows together with their sync queue
     entries (one local transaction, works offline)
  2. Background scheduler woken so the queue ships right away when online
  3. Order event published to monitor screens (best-effort)
"""
import logging

from fastapi import APIRouter, Body, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from posnode.api.deps import get_db, raise_http, request_sync
from posnode.core import events
from posnode.core.errors import PosError
from posnode.db import order_ops
from posnode.schemas.order import OrderCancel, OrderCreate, OrderEdit, OrderRead

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", response_model=OrderRead, status_code=status.HTTP_201_CREATED)
async def create_order(payload: OrderCreate, request: Request, db: AsyncSession = Depends(get_db)):
    """Place an order. Prices are snapshotted from the local catalog."""
    try:
        order = await order_ops.create_order(
            db,
            waiter_id=payload.waiter_id,
            customer=payload.customer,
            items=payload.items,
            masajista_ids=payload.masajista_ids,
        )
    except PosError as exc:
        raise_http(exc)

    request_sync(request, "order write")
    body = OrderRead.model_validate(order)
    await events.publish_event(events.ORDER_CREATED, body.snapshot())
    return body


@router.get("/{order_id}", response_model=OrderRead)
async def get_order(order_id: str, db: AsyncSession = Depends(get_db)):
    try:
        order = await order_ops.get_order(db, order_id)
    except PosError as exc:
        raise_http(exc)
    return OrderRead.model_validate(order)


@router.put("/{order_id}", response_model=OrderRead)
async def edit_order(order_id: str, payload: OrderEdit, request: Request, db: AsyncSession = Depends(get_db)):
    """Replace items, register a payment and/or complete the order."""
    try:
        result = await order_ops.edit_order(
            db,
            order_id,
            items=payload.items,
            payment=payload.payment,
            status=payload.status,
            edited_by=payload.edited_by,
            user_id=payload.user_id,
        )
    except PosError as exc:
        raise_http(exc)

    request_sync(request, "order write")
    body = OrderRead.model_validate(result.order)
    event = events.ORDER_COMPLETED if result.completed else events.ORDER_UPDATED
    await events.publish_event(event, body.snapshot())
    return body


@router.delete("/{order_id}", response_model=OrderRead)
async def cancel_order(
    order_id: str,
    request: Request,
    payload: OrderCancel | None = Body(None),
    db: AsyncSession = Depends(get_db),
):
    """Cancel (soft-delete) an order. Stock already deducted is not restored."""
    payload = payload or OrderCancel()
    try:
        order = await order_ops.cancel_order(
            db, order_id, reason=payload.reason, actor=payload.actor, user_id=payload.user_id
        )
    except PosError as exc:
        raise_http(exc)

    request_sync(request, "order write")
    body = OrderRead.model_validate(order)
    await events.publish_event(events.ORDER_CANCELLED, body.snapshot())
    return body
