"""
POS Node — Sync queue and business linkage models

[OUTBOX] sync_queue — one row per local mutation destined for the cloud.
Rows are never deleted; SYNCED rows double as an audit trail.
[CONFIG DATA] system_config — the single linked business account.
"""
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import DateTime, Enum, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from posnode.core.clock import utcnow
from posnode.db.database import Base


class SyncAction(str, PyEnum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class SyncStatus(str, PyEnum):
    PENDING = "PENDING"
    SYNCED = "SYNCED"
    FAILED = "FAILED"


def _str_enum(enum_cls, name: str) -> Enum:
    return Enum(enum_cls, name=name, native_enum=False, values_callable=lambda e: [m.value for m in e])


class SyncQueueEntry(Base):
    __tablename__ = "sync_queue"

    # Autoincrement id doubles as creation order
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entity: Mapped[str] = mapped_column(String(32), index=True, nullable=False)
    entity_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)
    action: Mapped[SyncAction] = mapped_column(_str_enum(SyncAction, "sync_action"), nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)  # JSON snapshot
    status: Mapped[SyncStatus] = mapped_column(
        _str_enum(SyncStatus, "sync_status"), index=True, default=SyncStatus.PENDING, nullable=False
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<SyncQueueEntry #{self.id} {self.entity}:{self.entity_id} {self.action.value} {self.status.value}>"


class SystemConfig(Base):
    __tablename__ = "system_config"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default="default")
    business_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    cloud_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    linked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    recovered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
