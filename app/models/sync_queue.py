from __future__ import annotations
from datetime import datetime
import enum

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, DateTime, Text, Enum, Index
from ..services.db import Base

class EventStatus(str, enum.Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    SUCCESS = "Success"
    FAILED = "Failed"

class SyncEvent(Base):
    __tablename__ = "sync_queue"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    event_type: Mapped[str] = mapped_column(String(128), index=True)
    source: Mapped[str] = mapped_column(String(64), default="paycor")
    external_event_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)  # provider eventId, tracing only

    payload: Mapped[str] = mapped_column(Text)                       # serialized JSON, opaque
    status: Mapped[EventStatus] = mapped_column(
        Enum(EventStatus, native_enum=False, length=16, values_callable=lambda e: [m.value for m in e]),
        default=EventStatus.PENDING,
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    retry_count: Mapped[int] = mapped_column(Integer, default=0)
    error_detail: Mapped[str] = mapped_column(String(500), default="")
    external_object_id: Mapped[str | None] = mapped_column(String(128), nullable=True)  # Jira object id after success
    next_attempt_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

Index("ix_sync_queue_status_created", SyncEvent.status, SyncEvent.created_at, SyncEvent.id)
