"""
POS Node — Stock deduction with combo expansion

Called once per order, at the moment the order becomes Completed:
  - combo products expand recursively into their components
    (component quantity x sold quantity at each level)
  - leaf products are decremented with a single SQL `stock = stock - n`
  - stock is NOT clamped at zero; negative stock signals oversell

Guards fail open for the sale and closed for inventory: a branch that is too
deep, cyclic or points at a missing product is skipped with a warning, and the
rest of the order is still deducted.
"""
import logging

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from posnode.core.config import get_settings
from posnode.models.catalog import Product
from posnode.models.order import Order

settings = get_settings()
logger = logging.getLogger(__name__)


async def deduct_stock(
    db: AsyncSession,
    product_id: str,
    quantity: int,
    visited: set[str] | None = None,
    depth: int = 0,
    *,
    applied: dict[str, int] | None = None,
) -> dict[str, int]:
    """
    Deduct `quantity` units of `product_id`, expanding combos.

    `visited` holds the products on the current call path only; a product is
    removed again when its branch returns, so two different branches may both
    reach the same leaf. Returns the leaf deductions applied, keyed by product id.
    """
    if visited is None:
        visited = set()
    if applied is None:
        applied = {}

    if depth > settings.MAX_COMBO_DEPTH:
        logger.warning("Combo expansion deeper than %d at product %s; branch skipped",
                       settings.MAX_COMBO_DEPTH, product_id)
        return applied
    if product_id in visited:
        logger.warning("Combo cycle detected at product %s; branch skipped", product_id)
        return applied

    product = await db.get(Product, product_id, populate_existing=True)
    if product is None:
        logger.warning("Product %s vanished before stock deduction; branch skipped", product_id)
        return applied

    if product.is_combo and product.combo_items:
        visited.add(product_id)
        try:
            for component in list(product.combo_items):
                await deduct_stock(
                    db,
                    component.product_id,
                    component.quantity * quantity,
                    visited,
                    depth + 1,
                    applied=applied,
                )
        finally:
            visited.discard(product_id)
        return applied

    await db.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(stock=Product.stock - quantity)
        .execution_options(synchronize_session="evaluate")
    )
    applied[product_id] = applied.get(product_id, 0) + quantity
    logger.debug("Deducted %d x %s", quantity, product.name)
    return applied


async def deduct_order_stock(db: AsyncSession, order: Order) -> dict[str, int]:
    """Deduct every line of `order`. Caller guarantees this runs once per order."""
    applied: dict[str, int] = {}
    for item in order.items:
        await deduct_stock(db, item.product_id, item.quantity, applied=applied)
    logger.info("Order %s: stock deducted for %d leaf product(s)", order.custom_id, len(applied))
    return applied
