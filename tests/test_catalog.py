"""
Catalog writes

Tests:
  1. Product creation and update queue camelCase snapshots
  2. Combo compositions are rejected when they would loop
  3. Products referenced by orders or combos cannot be deleted
"""
import json

import pytest

from posnode.core.errors import ComboCycleError, ProductInUseError, ProductNotFound
from posnode.db import catalog_ops, order_ops
from posnode.db.sync_queue import SyncEntity, entries_for
from posnode.models.sync import SyncAction
from posnode.schemas.order import OrderItemIn
from posnode.schemas.product import ComboComponent, ProductCreate, ProductUpdate
from tests.conftest import add_product


def _combo(*pairs):
    return [ComboComponent(product_id=pid, quantity=qty) for pid, qty in pairs]


# ─── Test 1: Create / update ───────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_create_combo_queues_snapshot(db):
    await add_product(db, "B")
    await add_product(db, "C")

    combo = await catalog_ops.create_product(
        db, ProductCreate(name="Combo1", price=30.0, is_combo=True, combo_items=_combo(("B", 2), ("C", 1)))
    )

    assert [(c.product_id, c.quantity) for c in combo.combo_items] == [("B", 2), ("C", 1)]
    entries = await entries_for(db, SyncEntity.PRODUCT, combo.id)
    assert [e.action for e in entries] == [SyncAction.CREATE]
    payload = json.loads(entries[0].payload)
    assert payload["isCombo"] is True
    assert payload["comboItems"] == [{"productId": "B", "quantity": 2}, {"productId": "C", "quantity": 1}]


@pytest.mark.asyncio
async def test_update_changes_only_given_fields(db):
    product = await catalog_ops.create_product(db, ProductCreate(name="Chicha", price=8.0, stock=5))

    updated = await catalog_ops.update_product(db, product.id, ProductUpdate(price=9.5))

    assert (updated.name, updated.price, updated.stock) == ("Chicha", 9.5, 5)
    entries = await entries_for(db, SyncEntity.PRODUCT, product.id)
    assert [e.action for e in entries] == [SyncAction.CREATE, SyncAction.UPDATE]
    assert json.loads(entries[-1].payload)["price"] == 9.5


@pytest.mark.asyncio
async def test_turning_off_combo_clears_components(db):
    await add_product(db, "B")
    await add_product(db, "COMBO1", combo=[("B", 2)])

    updated = await catalog_ops.update_product(db, "COMBO1", ProductUpdate(is_combo=False))

    assert updated.combo_items == []


@pytest.mark.asyncio
async def test_update_unknown_product(db):
    with pytest.raises(ProductNotFound):
        await catalog_ops.update_product(db, "missing", ProductUpdate(price=1.0))


# ─── Test 2: Cycles ────────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_combo_cannot_contain_itself(db):
    await add_product(db, "A")

    with pytest.raises(ComboCycleError):
        await catalog_ops.update_product(db, "A", ProductUpdate(is_combo=True, combo_items=_combo(("A", 1))))


@pytest.mark.asyncio
async def test_transitive_cycle_is_rejected_and_nothing_changes(db, session_factory):
    """A = {B}, B = {C}; making C contain A would loop and is refused."""
    await add_product(db, "LEAF")
    await add_product(db, "C")
    await add_product(db, "B", combo=[("C", 1)])
    await add_product(db, "A", combo=[("B", 1)])

    with pytest.raises(ComboCycleError):
        await catalog_ops.update_product(
            db, "C", ProductUpdate(is_combo=True, combo_items=_combo(("LEAF", 1), ("A", 1)))
        )

    async with session_factory() as session:
        c = await catalog_ops.get_product(session, "C")
        assert c.is_combo is False
        assert c.combo_items == []
        assert await entries_for(session, SyncEntity.PRODUCT, "C") == []


@pytest.mark.asyncio
async def test_shared_component_is_not_a_cycle(db):
    """Two combos may share a component, and a combo may nest another combo."""
    await add_product(db, "D")
    await add_product(db, "B", combo=[("D", 1)])

    combo = await catalog_ops.create_product(
        db, ProductCreate(name="Big", price=50.0, is_combo=True, combo_items=_combo(("B", 1), ("D", 2)))
    )

    assert len(combo.combo_items) == 2


@pytest.mark.asyncio
async def test_unknown_component_is_rejected(db):
    with pytest.raises(ProductNotFound):
        await catalog_ops.create_product(
            db, ProductCreate(name="Broken", price=1.0, is_combo=True, combo_items=_combo(("GHOST", 1)))
        )


# ─── Test 3: Delete ────────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_delete_queues_delete_entry(db):
    product = await catalog_ops.create_product(db, ProductCreate(name="Agua", price=3.0))

    await catalog_ops.delete_product(db, product.id)

    with pytest.raises(ProductNotFound):
        await catalog_ops.get_product(db, product.id)
    entries = await entries_for(db, SyncEntity.PRODUCT, product.id)
    assert [e.action for e in entries] == [SyncAction.CREATE, SyncAction.DELETE]


@pytest.mark.asyncio
async def test_product_sold_in_an_order_cannot_be_deleted(db):
    await add_product(db, "P1")
    await order_ops.create_order(db, None, None, [OrderItemIn(product_id="P1", quantity=1)])

    with pytest.raises(ProductInUseError):
        await catalog_ops.delete_product(db, "P1")


@pytest.mark.asyncio
async def test_combo_component_cannot_be_deleted(db, session_factory):
    await add_product(db, "B")
    await add_product(db, "COMBO1", combo=[("B", 1)])

    with pytest.raises(ProductInUseError):
        await catalog_ops.delete_product(db, "B")

    # Deleting the combo itself is fine and takes its composition with it
    async with session_factory() as session:
        await catalog_ops.delete_product(session, "COMBO1")
        await catalog_ops.delete_product(session, "B")
