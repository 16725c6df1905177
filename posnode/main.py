"""
POS Node — FastAPI application entrypoint
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from posnode.core.config import get_settings
from posnode.core.redis_client import close_redis
from posnode.db.database import AsyncSessionLocal, create_schema, engine
from posnode.middleware.idempotency import IdempotencyMiddleware
from posnode.api import health, monitor, orders, products, sync
from posnode.tasks.catalog_push import push_catalog
from posnode.tasks.reconcile import Reconciler
from posnode.tasks.scheduler import SyncScheduler

settings = get_settings()
logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: the local store must exist before anything else runs
    await create_schema(engine)
    if settings.SYNC_ENABLED:
        app.state.scheduler = SyncScheduler(
            app.state.reconciler,
            interval_seconds=settings.SYNC_INTERVAL_SECONDS,
            initial_delay_seconds=settings.SYNC_INITIAL_DELAY_SECONDS,
            catalog_push=lambda: push_catalog(app.state.session_factory, app.state.cloud_transport),
            catalog_every=settings.SYNC_CATALOG_EVERY_PASSES,
        )
        app.state.scheduler.start()
    yield
    # Shutdown
    if app.state.scheduler is not None:
        await app.state.scheduler.stop()
        app.state.scheduler = None
    await close_redis()
    await engine.dispose()


app = FastAPI(
    title="POS Node",
    description="Local-first point of sale: offline orders, combo stock deduction, cloud reconciliation.",
    version=settings.SERVICE_VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url=None,
)

app.state.session_factory = AsyncSessionLocal
app.state.cloud_transport = None
app.state.reconciler = Reconciler(AsyncSessionLocal)
app.state.scheduler = None

# ── CORS (desktop shell / local UI) ───────────────────────────────────────────
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_credentials=True,
                   allow_methods=["*"], allow_headers=["*"])

app.add_middleware(IdempotencyMiddleware)

if settings.METRICS_ENABLED:
    Instrumentator().instrument(app).expose(app, endpoint="/metrics")

app.include_router(orders.router)
app.include_router(products.router)
app.include_router(sync.router)
app.include_router(monitor.router)
app.include_router(health.router)


@app.get("/")
async def root():
    return {"service": settings.SERVICE_NAME, "version": settings.SERVICE_VERSION}
