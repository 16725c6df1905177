"""
POS Node — Catalog schemas (products and staff)
"""
from pydantic import Field

from posnode.schemas.base import CamelModel


class ComboComponent(CamelModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class ProductCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    price: float = Field(..., ge=0)
    category: str = "General"
    stock: int = 0
    is_combo: bool = False
    combo_items: list[ComboComponent] | None = None
    is_commissionable: bool = False
    commission_percentage: float = Field(0.0, ge=0, le=100)


class ProductUpdate(CamelModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    price: float | None = Field(None, ge=0)
    category: str | None = None
    stock: int | None = None
    is_combo: bool | None = None
    combo_items: list[ComboComponent] | None = None
    is_commissionable: bool | None = None
    commission_percentage: float | None = Field(None, ge=0, le=100)


class ProductRead(CamelModel):
    id: str
    name: str
    price: float
    category: str
    stock: int
    is_combo: bool
    is_commissionable: bool
    commission_percentage: float
    combo_items: list[ComboComponent] = []


class StaffUserRead(CamelModel):
    id: str
    name: str
    role: str
    pin: str | None = None
    status: str
