"""
POS Node — Shared API dependencies and error mapping
"""
from typing import AsyncGenerator, NoReturn

from fastapi import HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from posnode.core.errors import (
    BusinessNotLinked,
    ComboCycleError,
    OrderNotFound,
    OrderStateError,
    OrderValidationError,
    PosError,
    ProductInUseError,
    ProductNotFound,
    RecoveryError,
)
from posnode.tasks.reconcile import Reconciler
from posnode.tasks.scheduler import SyncScheduler


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    async with request.app.state.session_factory() as session:
        yield session


def get_reconciler(request: Request) -> Reconciler:
    return request.app.state.reconciler


def get_scheduler(request: Request) -> SyncScheduler | None:
    return request.app.state.scheduler


def request_sync(request: Request, reason: str) -> None:
    """Wake the background scheduler after a local write has committed."""
    scheduler = request.app.state.scheduler
    if scheduler is not None and scheduler.running:
        scheduler.trigger(reason)


_STATUS_BY_ERROR: list[tuple[type[PosError], int]] = [
    (ProductNotFound, status.HTTP_404_NOT_FOUND),
    (OrderNotFound, status.HTTP_404_NOT_FOUND),
    (OrderStateError, status.HTTP_409_CONFLICT),
    (ComboCycleError, status.HTTP_409_CONFLICT),
    (ProductInUseError, status.HTTP_409_CONFLICT),
    (OrderValidationError, 422),
    (BusinessNotLinked, status.HTTP_503_SERVICE_UNAVAILABLE),
    (RecoveryError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def raise_http(exc: PosError) -> NoReturn:
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            raise HTTPException(status_code=code, detail=str(exc)) from exc
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
