"""
POS Node — Products API (catalog writes that feed the sync queue)
"""
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from posnode.api.deps import get_db, raise_http, request_sync
from posnode.core.errors import PosError
from posnode.db import catalog_ops
from posnode.schemas.product import ProductCreate, ProductRead, ProductUpdate

router = APIRouter(prefix="/products", tags=["products"])


@router.post("", response_model=ProductRead, status_code=status.HTTP_201_CREATED)
async def create_product(payload: ProductCreate, request: Request, db: AsyncSession = Depends(get_db)):
    try:
        product = await catalog_ops.create_product(db, payload)
    except PosError as exc:
        raise_http(exc)
    request_sync(request, "catalog write")
    return ProductRead.model_validate(product)


@router.get("/{product_id}", response_model=ProductRead)
async def get_product(product_id: str, db: AsyncSession = Depends(get_db)):
    try:
        product = await catalog_ops.get_product(db, product_id)
    except PosError as exc:
        raise_http(exc)
    return ProductRead.model_validate(product)


@router.put("/{product_id}", response_model=ProductRead)
async def update_product(product_id: str, payload: ProductUpdate, request: Request, db: AsyncSession = Depends(get_db)):
    """Update a product; combo compositions are rejected if they would loop."""
    try:
        product = await catalog_ops.update_product(db, product_id, payload)
    except PosError as exc:
        raise_http(exc)
    request_sync(request, "catalog write")
    return ProductRead.model_validate(product)


@router.delete("/{product_id}")
async def delete_product(product_id: str, request: Request, db: AsyncSession = Depends(get_db)):
    try:
        await catalog_ops.delete_product(db, product_id)
    except PosError as exc:
        raise_http(exc)
    request_sync(request, "catalog write")
    return {"success": True}
