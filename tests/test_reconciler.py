"""
Reconciliation engine

Tests:
  1. Order + payment flow end to end: every entry becomes SYNCED
  2. Cloud errors mark entries FAILED with lastError, the next pass retries them
  3. Timeouts and transport errors are recorded, the pass carries on
  4. No linked business aborts the pass without touching entries
  5. Payload shaping per entity (stripped fields, injected ids) and DELETE
  6. Replays and overlapping passes leave the same remote state
"""
import asyncio

import pytest
from sqlalchemy import select, update

from posnode.db import catalog_ops, order_ops
from posnode.db.link_ops import link_business
from posnode.db.sync_queue import SYNC_ROUTES, SyncEntity, enqueue
from posnode.db.database import serialized_write
from posnode.models.order import OrderStatus
from posnode.models.sync import SyncAction, SyncQueueEntry, SyncStatus
from posnode.schemas.order import OrderItemIn, PaymentIn
from posnode.schemas.product import ComboComponent, ProductCreate
from posnode.tasks.reconcile import Reconciler
from tests.conftest import add_product

BUSINESS = "BIZ-001"


async def _entries(session_factory) -> list[SyncQueueEntry]:
    async with session_factory() as session:
        result = await session.execute(select(SyncQueueEntry).order_by(SyncQueueEntry.id))
        return list(result.scalars().all())


async def _paid_order(db):
    await add_product(db, "P1", price=25.00, stock=10)
    order = await order_ops.create_order(db, "W1", None, [OrderItemIn(product_id="P1", quantity=2)])
    await order_ops.edit_order(db, order.id, payment=PaymentIn(amount=50.00))
    return order


# ─── Test 1: End to end ────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_paid_order_reaches_the_cloud(db, session_factory, cloud):
    """CREATE, UPDATE and payment CREATE are pushed in order and all end SYNCED."""
    order = await _paid_order(db)
    await link_business(db, BUSINESS, "secret-token")

    report = await Reconciler(session_factory, cloud.transport).run_pass()

    assert (report.processed, report.synced, report.failed) == (3, 3, 0)
    entries = await _entries(session_factory)
    assert all(e.status == SyncStatus.SYNCED for e in entries)
    assert all(e.attempts == 1 and e.synced_at is not None for e in entries)

    sent = cloud.sync_requests()
    assert [(b["action"], b["localId"]) for b in sent][:2] == [("CREATE", order.id), ("UPDATE", order.id)]
    remote = cloud.rows[("order", BUSINESS, order.id)]
    assert remote["status"] == OrderStatus.COMPLETED.value
    assert remote["paidAmount"] == 50.0

    request = cloud.requests[0]
    assert request.headers["X-Business-Id"] == BUSINESS
    assert request.headers["Authorization"] == "Bearer secret-token"


@pytest.mark.asyncio
async def test_synced_entries_are_not_resent(db, session_factory, cloud):
    await _paid_order(db)
    await link_business(db, BUSINESS, None)
    reconciler = Reconciler(session_factory, cloud.transport)

    await reconciler.run_pass()
    second = await reconciler.run_pass()

    assert second.processed == 0
    assert len(cloud.sync_requests()) == 3
    assert reconciler.last_report is second


# ─── Test 2: Failures and retry ────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_cloud_error_marks_failed_then_retries(db, session_factory, cloud):
    """A 500 with an error body becomes lastError; once the cloud recovers the entry syncs."""
    await _paid_order(db)
    await link_business(db, BUSINESS, None)
    reconciler = Reconciler(session_factory, cloud.transport)

    cloud.fail_with = (500, {"error": "database unavailable"})
    report = await reconciler.run_pass()

    assert (report.synced, report.failed) == (0, 3)
    entries = await _entries(session_factory)
    assert all(e.status == SyncStatus.FAILED for e in entries)
    assert entries[0].last_error == "database unavailable"
    assert entries[0].attempts == 1

    cloud.fail_with = None
    report = await reconciler.run_pass()

    assert report.synced == 3
    entries = await _entries(session_factory)
    assert all(e.status == SyncStatus.SYNCED for e in entries)
    assert entries[0].attempts == 2
    assert entries[0].last_error is None


@pytest.mark.asyncio
async def test_success_false_body_is_a_failure(db, session_factory, cloud):
    await _paid_order(db)
    await link_business(db, BUSINESS, None)

    cloud.fail_with = (200, {"success": False, "error": "duplicate customId"})
    await Reconciler(session_factory, cloud.transport).run_pass()

    entries = await _entries(session_factory)
    assert entries[0].status == SyncStatus.FAILED
    assert entries[0].last_error == "duplicate customId"


@pytest.mark.asyncio
async def test_error_without_body_records_status_code(db, session_factory, cloud):
    await _paid_order(db)
    await link_business(db, BUSINESS, None)

    cloud.fail_with = (502, {})
    await Reconciler(session_factory, cloud.transport).run_pass()

    entries = await _entries(session_factory)
    assert entries[0].last_error == "HTTP 502"


# ─── Test 3: Timeouts ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_timeout_is_recorded_and_pass_continues(db, session_factory, cloud):
    await _paid_order(db)
    await link_business(db, BUSINESS, None)

    cloud.timeout = True
    report = await Reconciler(session_factory, cloud.transport).run_pass()

    assert report.processed == 3
    assert report.failed == 3
    entries = await _entries(session_factory)
    assert all(e.last_error.startswith("timeout") for e in entries)


# ─── Test 4: Not linked ────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_pass_aborts_without_business(db, session_factory, cloud):
    """Nothing is sent and nothing changes state until a business is linked."""
    await _paid_order(db)

    report = await Reconciler(session_factory, cloud.transport).run_pass()

    assert report.aborted is True
    assert report.reason == "business not linked"
    assert report.processed == 0
    assert cloud.requests == []
    entries = await _entries(session_factory)
    assert all(e.status == SyncStatus.PENDING and e.attempts == 0 for e in entries)


# ─── Test 5: Payload shaping ───────────────────────────────────────────────────
def test_every_entity_has_a_route():
    assert set(SYNC_ROUTES) == set(SyncEntity)


@pytest.mark.asyncio
async def test_order_payload_is_stripped_and_tagged(db, session_factory, cloud):
    """Orders lose id and payments, gain localId, businessId and updatedAt."""
    order = await _paid_order(db)
    await link_business(db, BUSINESS, None)

    await Reconciler(session_factory, cloud.transport).run_pass()

    data = cloud.rows[("order", BUSINESS, order.id)]
    assert "id" not in data
    assert "payments" not in data
    assert data["localId"] == order.id
    assert data["businessId"] == BUSINESS
    assert "updatedAt" in data
    assert data["items"][0]["productId"] == "P1"

    payment_rows = [v for (entity, _, _), v in cloud.rows.items() if entity == "payment"]
    assert len(payment_rows) == 1
    assert payment_rows[0]["orderId"] == order.id
    assert payment_rows[0]["amount"] == 50.0


@pytest.mark.asyncio
async def test_product_payload_drops_combo_items(db, session_factory, cloud):
    await add_product(db, "B", stock=10)
    combo = await catalog_ops.create_product(
        db, ProductCreate(name="Combo1", price=30.0, is_combo=True,
                          combo_items=[ComboComponent(product_id="B", quantity=2)])
    )
    await link_business(db, BUSINESS, None)

    await Reconciler(session_factory, cloud.transport).run_pass()

    data = cloud.rows[("product", BUSINESS, combo.id)]
    assert data["name"] == "Combo1"
    assert data["isCombo"] is True
    assert "comboItems" not in data


@pytest.mark.asyncio
async def test_delete_removes_remote_record(db, session_factory, cloud):
    """A product created then deleted offline ends up absent from the cloud."""
    product = await catalog_ops.create_product(db, ProductCreate(name="Chicha", price=8.0))
    await catalog_ops.delete_product(db, product.id)
    await link_business(db, BUSINESS, None)

    await Reconciler(session_factory, cloud.transport).run_pass()

    delete_body = cloud.sync_requests()[-1]
    assert delete_body["action"] == "DELETE"
    assert delete_body["data"] == {"localId": product.id, "businessId": BUSINESS}
    assert ("product", BUSINESS, product.id) not in cloud.rows


@pytest.mark.asyncio
async def test_unknown_entity_fails_without_request(db, session_factory, cloud):
    """Rows with an entity type this build does not know are failed locally."""
    async with serialized_write(db):
        db.add(SyncQueueEntry(entity="invoice", entity_id="X1", action=SyncAction.CREATE,
                              payload="{}", status=SyncStatus.PENDING))
    await link_business(db, BUSINESS, None)

    report = await Reconciler(session_factory, cloud.transport).run_pass()

    assert report.failed == 1
    assert cloud.requests == []
    entry = (await _entries(session_factory))[0]
    assert entry.status == SyncStatus.FAILED
    assert "invoice" in entry.last_error


# ─── Test 6: Idempotence ───────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_replaying_an_entry_keeps_remote_state(db, session_factory, cloud):
    """Pushing the same entry twice leaves one remote row with the same content."""
    await link_business(db, BUSINESS, None)
    async with serialized_write(db):
        entry = await enqueue(db, SyncEntity.STAFF, "S1", SyncAction.UPDATE, {"id": "S1", "name": "Rosa"})
    reconciler = Reconciler(session_factory, cloud.transport)

    await reconciler.run_pass()
    first = dict(cloud.rows)

    async with serialized_write(db):
        await db.execute(
            update(SyncQueueEntry).where(SyncQueueEntry.id == entry.id).values(status=SyncStatus.PENDING)
        )
    replay = await reconciler.run_pass()

    assert replay.processed == 1

    assert cloud.rows.keys() == first.keys()
    strip = lambda row: {k: v for k, v in row.items() if k != "updatedAt"}  # noqa: E731
    assert strip(cloud.rows[("staff", BUSINESS, "S1")]) == strip(first[("staff", BUSINESS, "S1")])
    assert "id" not in cloud.rows[("staff", BUSINESS, "S1")]


@pytest.mark.asyncio
async def test_overlapping_passes_converge(db, session_factory, cloud):
    """Two passes started together both finish and every entry ends SYNCED."""
    order = await _paid_order(db)
    await link_business(db, BUSINESS, None)
    reconciler = Reconciler(session_factory, cloud.transport)

    await asyncio.gather(reconciler.run_pass(), reconciler.run_pass())

    entries = await _entries(session_factory)
    assert all(e.status == SyncStatus.SYNCED for e in entries)
    assert len([k for k in cloud.rows if k[0] == "order"]) == 1
    assert cloud.rows[("order", BUSINESS, order.id)]["status"] == "Completed"
