"""
POS Node — Order lifecycle

States: Pending → Completed, Pending → Cancelled (Completed → Cancelled is
allowed for refunds). Each operation is one write unit of work: the order rows,
the stock deduction and the sync queue entries commit together or not at all.

Completion happens when an explicit status=Completed is requested or when the
accumulated payments reach the (possibly just recomputed) total. Stock is
deducted exactly once, on the Pending → Completed edge.
"""
import json
import logging
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from posnode.core.config import get_settings
from posnode.core.errors import OrderNotFound, OrderStateError, OrderValidationError, ProductNotFound
from posnode.db.counter_ops import next_order_id
from posnode.db.database import serialized_write
from posnode.db.stock_ops import deduct_order_stock
from posnode.db.sync_queue import SyncEntity, enqueue
from posnode.models.catalog import Product
from posnode.models.order import AuditLog, Order, OrderItem, OrderStatus, Payment
from posnode.models.sync import SyncAction
from posnode.schemas.order import AuditLogRead, OrderItemIn, OrderRead, PaymentIn, PaymentRead

settings = get_settings()
logger = logging.getLogger(__name__)


@dataclass
class EditResult:
    order: Order
    completed: bool = False
    payment: Payment | None = None
    deducted: dict[str, int] = field(default_factory=dict)


def _money(value: float) -> float:
    return round(value, 2)


async def _load_products(db: AsyncSession, items: list[OrderItemIn]) -> dict[str, Product]:
    ids = {item.product_id for item in items}
    result = await db.execute(select(Product).where(Product.id.in_(ids)))
    products = {p.id: p for p in result.scalars().all()}
    for item in items:
        if item.product_id not in products:
            raise ProductNotFound(item.product_id)
    return products


def _validate_items(items: list[OrderItemIn]) -> None:
    if not items:
        raise OrderValidationError("An order needs at least one item")
    for item in items:
        if item.quantity < 1:
            raise OrderValidationError(f"Invalid quantity {item.quantity} for product {item.product_id}")


def _price_lines(items: list[OrderItemIn], products: dict[str, Product]) -> tuple[list[OrderItem], float]:
    """Snapshot current product prices into new order lines."""
    lines = []
    total = 0.0
    for position, item in enumerate(items):
        price = products[item.product_id].price
        total += price * item.quantity
        lines.append(OrderItem(product_id=item.product_id, quantity=item.quantity, price=price, position=position))
    return lines, _money(total)


async def _names_of(db: AsyncSession, lines: list[OrderItem]) -> dict[str, str]:
    ids = {line.product_id for line in lines}
    if not ids:
        return {}
    rows = await db.execute(select(Product.id, Product.name).where(Product.id.in_(ids)))
    return dict(rows.all())


def _describe(lines: list[OrderItem], names: dict[str, str]) -> str:
    return ", ".join(f"{line.quantity}x {names.get(line.product_id, 'Producto')}" for line in lines)


async def _write_log(db: AsyncSession, action: str, details: str, user_id: str | None) -> None:
    log = AuditLog(action=action, details=details, user_id=user_id)
    db.add(log)
    await db.flush()
    await enqueue(db, SyncEntity.LOG, log.id, SyncAction.CREATE, AuditLogRead.model_validate(log).snapshot())


def order_snapshot(order: Order) -> dict:
    return OrderRead.model_validate(order).snapshot()


async def get_order(db: AsyncSession, order_id: str) -> Order:
    # Another session may have committed since this one last saw the row
    order = await db.get(Order, order_id, populate_existing=True)
    if order is None:
        raise OrderNotFound(order_id)
    return order


async def create_order(
    db: AsyncSession,
    waiter_id: str | None,
    customer: str | None,
    items: list[OrderItemIn],
    masajista_ids: list[str] | None = None,
) -> Order:
    """Place a Pending order with prices snapshotted from the catalog."""
    _validate_items(items)

    async with serialized_write(db):
        products = await _load_products(db, items)
        lines, total = _price_lines(items, products)

        order = Order(
            custom_id=await next_order_id(db),
            status=OrderStatus.PENDING,
            waiter_id=waiter_id,
            customer=(customer or "").strip() or settings.DEFAULT_CUSTOMER_NAME,
            total_amount=total,
            paid_amount=0.0,
            masajista_ids=json.dumps(masajista_ids) if masajista_ids else None,
            items=lines,
            payments=[],
        )
        db.add(order)
        await db.flush()
        await enqueue(db, SyncEntity.ORDER, order.id, SyncAction.CREATE, order_snapshot(order))

    logger.info("Created order %s (%s) total=%.2f", order.custom_id, order.id, order.total_amount)
    return order


async def edit_order(
    db: AsyncSession,
    order_id: str,
    items: list[OrderItemIn] | None = None,
    payment: PaymentIn | None = None,
    status: OrderStatus | None = None,
    edited_by: str | None = None,
    user_id: str | None = None,
) -> EditResult:
    """
    Replace items, append a payment and/or move the status forward.

    Item replacement re-snapshots current prices and recomputes the total.
    A payment that brings paid_amount to the total completes the order.
    """
    if items is not None:
        _validate_items(items)
    if payment is not None and payment.amount <= 0:
        raise OrderValidationError("Payment amount must be positive")

    async with serialized_write(db):
        order = await get_order(db, order_id)
        previous_status = order.status

        if previous_status == OrderStatus.CANCELLED and (items is not None or payment is not None):
            raise OrderStateError(f"Order {order.custom_id} is cancelled and can no longer be modified")
        if status is not None and status != previous_status:
            if status == OrderStatus.CANCELLED:
                raise OrderStateError("Use cancel to cancel an order")
            if status == OrderStatus.PENDING or previous_status == OrderStatus.CANCELLED:
                raise OrderStateError(
                    f"Cannot move order {order.custom_id} from {previous_status.value} to {status.value}"
                )

        if edited_by:
            order.edited_by = edited_by

        if items is not None:
            before = _describe(order.items, await _names_of(db, order.items))
            products = await _load_products(db, items)
            names = {pid: p.name for pid, p in products.items()}

            lines, total = _price_lines(items, products)
            order.items.clear()
            await db.flush()
            order.items.extend(lines)
            order.total_amount = total
            if not any(p.is_commissionable for p in products.values()):
                order.masajista_ids = None

            await _write_log(
                db,
                "ORDER_EDITED",
                f"Order {order.custom_id} edited by {edited_by or 'Admin'}. "
                f"Before: [{before}]. Now: [{_describe(lines, names)}]. Total: {total:.2f}",
                user_id,
            )

        new_payment = None
        if payment is not None:
            new_payment = Payment(amount=_money(payment.amount), method=payment.method, cashier=payment.cashier)
            order.payments.append(new_payment)
            order.paid_amount = _money(order.paid_amount + payment.amount)

        reaches_total = payment is not None and order.paid_amount >= _money(order.total_amount)
        completing = (
            previous_status == OrderStatus.PENDING
            and (status == OrderStatus.COMPLETED or reaches_total)
        )

        deducted: dict[str, int] = {}
        if completing:
            order.status = OrderStatus.COMPLETED
            await db.flush()
            deducted = await deduct_order_stock(db, order)

        await db.flush()
        await enqueue(db, SyncEntity.ORDER, order.id, SyncAction.UPDATE, order_snapshot(order))
        if new_payment is not None:
            await enqueue(db, SyncEntity.PAYMENT, new_payment.id, SyncAction.CREATE,
                          PaymentRead.model_validate(new_payment).snapshot())

    if completing:
        logger.info("Order %s completed (paid %.2f of %.2f)", order.custom_id, order.paid_amount, order.total_amount)
    return EditResult(order=order, completed=completing, payment=new_payment, deducted=deducted)


async def cancel_order(
    db: AsyncSession,
    order_id: str,
    reason: str | None,
    actor: str | None,
    user_id: str | None = None,
) -> Order:
    """
    Soft-delete: status becomes Cancelled and the full snapshot is queued.

    Completed orders may be cancelled (refunds); their stock is not restored.
    """
    async with serialized_write(db):
        order = await get_order(db, order_id)
        if order.status == OrderStatus.CANCELLED:
            raise OrderStateError(f"Order {order.custom_id} is already cancelled")

        reason = (reason or "").strip() or "Not specified"
        actor = (actor or "").strip() or "Admin"
        order.status = OrderStatus.CANCELLED
        order.cancel_reason = reason
        order.edited_by = actor

        names = await _names_of(db, order.items)
        await _write_log(
            db,
            "ORDER_CANCELLED",
            f"Order {order.custom_id} cancelled by {actor}. Reason: {reason}. "
            f"Contained: [{_describe(order.items, names)}]. Total: {order.total_amount:.2f}",
            user_id,
        )

        await db.flush()
        await enqueue(db, SyncEntity.ORDER, order.id, SyncAction.UPDATE, order_snapshot(order))

    logger.info("Order %s cancelled by %s", order.custom_id, actor)
    return order
