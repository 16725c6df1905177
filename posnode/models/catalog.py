"""
POS Node — Catalog models

[REFERENCE DATA] products, combo compositions and staff. Hydrated from the
cloud on first link (recovery), edited locally afterwards.
"""
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from posnode.core.clock import utcnow
from posnode.db.database import Base


class Product(Base):
    """
    stock may go negative: overselling is signalled, never blocked.
    Combo products are never decremented themselves, only their components.
    """
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    category: Mapped[str] = mapped_column(String(100), nullable=False, default="General")
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_combo: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_commissionable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    commission_percentage: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    combo_items: Mapped[list["ComboItem"]] = relationship(
        back_populates="combo",
        foreign_keys="ComboItem.combo_id",
        cascade="all, delete-orphan",
        order_by="ComboItem.position",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Product {self.name} stock={self.stock} combo={self.is_combo}>"


class ComboItem(Base):
    """One (component, quantity) pair of a combo, kept in declaration order."""
    __tablename__ = "combo_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    combo_id: Mapped[str] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), index=True, nullable=False)
    product_id: Mapped[str] = mapped_column(ForeignKey("products.id"), index=True, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    combo: Mapped[Product] = relationship(back_populates="combo_items", foreign_keys=[combo_id])


class StaffUser(Base):
    """Waiters, cashiers and masajistas (commission-eligible staff)."""
    __tablename__ = "staff_users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False, default="WAITER")
    pin: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="ACTIVE")
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
