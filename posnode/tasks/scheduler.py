"""
POS Node — Background sync scheduler

A single asyncio task that runs a reconciliation pass on a fixed interval, or
sooner when woken by a trigger ("sync now", a local write, connectivity
restored). Triggers that arrive while a pass is running coalesce into one
follow-up pass. Every `catalog_every` passes the full catalog is pushed too.
"""
import asyncio
import logging
from typing import Awaitable, Callable

from posnode.tasks.reconcile import Reconciler

logger = logging.getLogger(__name__)


class SyncScheduler:
    def __init__(
        self,
        reconciler: Reconciler,
        interval_seconds: float,
        initial_delay_seconds: float = 0.0,
        catalog_push: Callable[[], Awaitable[bool]] | None = None,
        catalog_every: int = 10,
    ):
        self.reconciler = reconciler
        self._interval = interval_seconds
        self._initial_delay = initial_delay_seconds
        self._catalog_push = catalog_push
        self._catalog_every = max(1, catalog_every)
        self._passes = 0
        self._wake = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        logger.info("Starting background sync every %.0fs", self._interval)
        self._task = asyncio.create_task(self._run(), name="sync-scheduler")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    def trigger(self, reason: str) -> None:
        logger.debug("Sync triggered: %s", reason)
        self._wake.set()

    async def _sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
        self._wake.clear()

    async def _tick(self) -> None:
        await self.reconciler.run_pass()
        self._passes += 1
        if self._catalog_push is not None and self._passes % self._catalog_every == 0:
            await self._catalog_push()

    async def _run(self) -> None:
        await self._sleep(self._initial_delay)
        while True:
            try:
                await self._tick()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Background sync pass crashed; retrying next tick")
            await self._sleep(self._interval)
