"""
Shared fixtures: a throwaway SQLite store per test, a stub cloud replica
behind httpx.MockTransport, and an in-memory stand-in for the redis side channel.
"""
import json

import httpx
import pytest
import pytest_asyncio

from posnode.core import redis_client
from posnode.db.database import build_engine, build_session_factory, create_schema
from posnode.models.catalog import ComboItem, Product


# ─── Local store ───────────────────────────────────────────────────────────────
@pytest_asyncio.fixture
async def engine(tmp_path):
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'pos-test.db'}")
    await create_schema(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


async def add_product(db, pid, name=None, price=10.0, stock=100, combo=None, commissionable=False) -> Product:
    """Insert a product directly (no sync entry, no composition checks)."""
    product = Product(
        id=pid,
        name=name or pid,
        price=price,
        stock=stock,
        is_combo=bool(combo),
        is_commissionable=commissionable,
        combo_items=[
            ComboItem(product_id=component_id, quantity=qty, position=position)
            for position, (component_id, qty) in enumerate(combo or [])
        ],
    )
    db.add(product)
    await db.commit()
    return product


async def link_components(session_factory, combo_id, components) -> None:
    """Attach components to an existing product with raw rows, bypassing cycle checks."""
    async with session_factory() as session:
        combo = await session.get(Product, combo_id)
        combo.is_combo = True
        for position, (component_id, qty) in enumerate(components):
            session.add(ComboItem(combo_id=combo_id, product_id=component_id, quantity=qty, position=position))
        await session.commit()


async def stock_of(session_factory, pid) -> int:
    async with session_factory() as session:
        return (await session.get(Product, pid)).stock


# ─── Stub cloud replica ────────────────────────────────────────────────────────
class FakeCloud:
    """
    Mimics the cloud sync API: POST /sync/{entity} upserts on
    (businessId, localId) or deletes; GET /recovery returns a snapshot and
    POST /recovery/sync stores the pushed catalog.
    """

    def __init__(self):
        self.rows: dict[tuple[str, str, str], dict] = {}
        self.requests: list[httpx.Request] = []
        self.fail_with: tuple[int, dict] | None = None
        self.timeout = False
        self.recovery_data: dict = {"products": [], "staffUsers": []}
        self.recovery_status = 200
        self.catalog: dict | None = None
        self.transport = httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.timeout:
            raise httpx.ReadTimeout("cloud did not answer", request=request)
        if self.fail_with is not None:
            status, body = self.fail_with
            return httpx.Response(status, json=body)

        business_id = request.headers.get("X-Business-Id")
        path = request.url.path

        if request.method == "GET" and path.endswith("/recovery"):
            return httpx.Response(self.recovery_status, json={"success": True, "data": self.recovery_data})

        if request.method == "POST" and path.endswith("/recovery/sync"):
            self.catalog = json.loads(request.content)
            return httpx.Response(200, json={"success": True})

        if request.method == "POST" and "/sync/" in path:
            entity = path.rsplit("/sync/", 1)[1]
            body = json.loads(request.content)
            key = (entity, business_id, body["localId"])
            if body["action"] == "DELETE":
                self.rows.pop(key, None)
            else:
                self.rows[key] = body["data"]
            return httpx.Response(200, json={"success": True})

        return httpx.Response(404, json={"error": "not found"})

    def sync_requests(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests if r.method == "POST" and "/sync/" in r.url.path]


@pytest.fixture
def cloud():
    return FakeCloud()


# ─── Redis side channel ────────────────────────────────────────────────────────
class FakeRedis:
    def __init__(self):
        self.values: dict[str, str] = {}
        self.published: list[tuple[str, dict]] = []

    async def get(self, key):
        return self.values.get(key)

    async def setex(self, key, ttl, value):
        self.values[key] = value

    async def publish(self, channel, message):
        self.published.append((channel, json.loads(message)))
        return 1

    async def ping(self):
        return True

    async def aclose(self):
        pass


@pytest.fixture
def fake_redis(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(redis_client, "_redis_client", fake)
    return fake
