"""
POS Node — Catalog operations

Combo compositions are checked structurally when they are written: every
component must exist and the composition graph must stay acyclic. The stock
resolver keeps its own depth/cycle guards for data that predates this check
(e.g. products hydrated from the cloud).
"""
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from posnode.core.errors import ComboCycleError, ProductInUseError, ProductNotFound
from posnode.db.database import serialized_write
from posnode.db.sync_queue import SyncEntity, enqueue
from posnode.models.catalog import ComboItem, Product
from posnode.models.order import OrderItem
from posnode.models.sync import SyncAction
from posnode.schemas.product import ComboComponent, ProductCreate, ProductRead, ProductUpdate

logger = logging.getLogger(__name__)


async def get_product(db: AsyncSession, product_id: str) -> Product:
    product = await db.get(Product, product_id, populate_existing=True)
    if product is None:
        raise ProductNotFound(product_id)
    return product


async def _reaches(db: AsyncSession, start_id: str, target_id: str) -> bool:
    """True if `target_id` is reachable from `start_id` through stored combo compositions."""
    stack = [start_id]
    seen: set[str] = set()
    while stack:
        current = stack.pop()
        if current == target_id:
            return True
        if current in seen:
            continue
        seen.add(current)
        rows = await db.execute(select(ComboItem.product_id).where(ComboItem.combo_id == current))
        stack.extend(rows.scalars().all())
    return False


async def check_composition(db: AsyncSession, combo_id: str, components: list[ComboComponent]) -> None:
    """Raise unless `components` can be stored as the composition of `combo_id`."""
    for component in components:
        if component.product_id == combo_id:
            raise ComboCycleError(f"Combo {combo_id} cannot contain itself")
        if await db.get(Product, component.product_id) is None:
            raise ProductNotFound(component.product_id)
        if await _reaches(db, component.product_id, combo_id):
            raise ComboCycleError(
                f"Component {component.product_id} already contains {combo_id}; composition would loop"
            )


def _replace_components(product: Product, components: list[ComboComponent]) -> None:
    product.combo_items.clear()
    for position, component in enumerate(components):
        product.combo_items.append(
            ComboItem(product_id=component.product_id, quantity=component.quantity, position=position)
        )


async def create_product(db: AsyncSession, data: ProductCreate) -> Product:
    async with serialized_write(db):
        product = Product(
            name=data.name,
            price=data.price,
            category=data.category,
            stock=data.stock,
            is_combo=data.is_combo,
            is_commissionable=data.is_commissionable,
            commission_percentage=data.commission_percentage,
            combo_items=[],
        )
        db.add(product)
        await db.flush()

        if data.is_combo and data.combo_items:
            await check_composition(db, product.id, data.combo_items)
            _replace_components(product, data.combo_items)
            await db.flush()

        await enqueue(db, SyncEntity.PRODUCT, product.id, SyncAction.CREATE,
                      ProductRead.model_validate(product).snapshot())

    logger.info("Created product %s (%s)", product.name, product.id)
    return product


async def update_product(db: AsyncSession, product_id: str, data: ProductUpdate) -> Product:
    async with serialized_write(db):
        product = await get_product(db, product_id)

        for field in ("name", "price", "category", "stock", "is_commissionable", "commission_percentage"):
            value = getattr(data, field)
            if value is not None:
                setattr(product, field, value)

        if data.is_combo is not None:
            product.is_combo = data.is_combo

        if not product.is_combo:
            product.combo_items.clear()
        elif data.combo_items is not None:
            await check_composition(db, product.id, data.combo_items)
            _replace_components(product, data.combo_items)

        await db.flush()
        await enqueue(db, SyncEntity.PRODUCT, product.id, SyncAction.UPDATE,
                      ProductRead.model_validate(product).snapshot())

    return product


async def delete_product(db: AsyncSession, product_id: str) -> None:
    async with serialized_write(db):
        product = await get_product(db, product_id)

        sold = await db.scalar(select(OrderItem.id).where(OrderItem.product_id == product_id).limit(1))
        if sold is not None:
            raise ProductInUseError(f"Product {product.name} is referenced by existing orders")
        component_of = await db.scalar(select(ComboItem.combo_id).where(ComboItem.product_id == product_id).limit(1))
        if component_of is not None:
            raise ProductInUseError(f"Product {product.name} is a component of combo {component_of}")

        payload = ProductRead.model_validate(product).snapshot()
        await db.delete(product)
        await enqueue(db, SyncEntity.PRODUCT, product_id, SyncAction.DELETE, payload)

    logger.info("Deleted product %s (%s)", payload["name"], product_id)
