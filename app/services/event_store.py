# app/services/event_store.py
"""Durable sync queue backed by the ``sync_queue`` table.

Every public method opens its own short-lived session; no session or ORM
object outlives a call. Callers get immutable :class:`Event` values back.
"""
from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional

from sqlalchemy import select, update, func, text, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..errors import NotFoundError, PersistenceError, ValidationError
from ..models.sync_queue import EventStatus, SyncEvent
from .db import db_session

ERROR_DETAIL_LIMIT = 500

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything we write is UTC
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def truncate_detail(message: Optional[str]) -> str:
    """Clamp a failure message to the stored column width."""
    if not message:
        return ""
    return message[:ERROR_DETAIL_LIMIT]


def _dump_payload(payload: Any) -> str:
    try:
        return json.dumps(payload, ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError) as exc:
        raise PersistenceError(f"payload is not JSON serializable: {exc}") from exc


@dataclass(frozen=True)
class Event:
    """Immutable snapshot of one queued event."""

    id: int
    event_type: str
    payload: Any
    status: EventStatus
    created_at: datetime
    updated_at: datetime
    retry_count: int = 0
    error_detail: str = ""
    external_object_id: Optional[str] = None
    source: str = "paycor"
    external_event_id: Optional[str] = None
    next_attempt_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: SyncEvent) -> "Event":
        try:
            payload = json.loads(row.payload)
        except (TypeError, ValueError) as exc:
            raise PersistenceError(f"stored payload for event {row.id} is not valid JSON") from exc
        return cls(
            id=row.id,
            event_type=row.event_type,
            payload=payload,
            status=EventStatus(row.status),
            created_at=_as_utc(row.created_at),
            updated_at=_as_utc(row.updated_at),
            retry_count=row.retry_count or 0,
            error_detail=row.error_detail or "",
            external_object_id=row.external_object_id,
            source=row.source,
            external_event_id=row.external_event_id,
            next_attempt_at=_as_utc(row.next_attempt_at),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "eventType": self.event_type,
            "source": self.source,
            "externalEventId": self.external_event_id,
            "payload": self.payload,
            "status": self.status.value,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
            "retryCount": self.retry_count,
            "errorDetail": self.error_detail,
            "externalObjectId": self.external_object_id,
            "nextAttemptAt": self.next_attempt_at.isoformat() if self.next_attempt_at else None,
        }


class EventStore:
    """Insert, batch retrieval and status transitions for queued events."""

    def __init__(
        self,
        session_factory: sessionmaker,
        clock: Clock = utcnow,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock
        self._log = logger or logging.getLogger(__name__)

    @contextmanager
    def _session(self, op: str) -> Iterator[Session]:
        try:
            with db_session(self._session_factory) as db:
                yield db
        except SQLAlchemyError as exc:
            self._log.error("sync_queue %s failed: %s", op, exc)
            raise PersistenceError(f"{op} failed: {exc}") from exc

    @staticmethod
    def _require_row(db: Session, event_id: int) -> SyncEvent:
        row = db.get(SyncEvent, event_id)
        if row is None:
            raise NotFoundError(event_id)
        return row

    def _update(self, op: str, event_id: int, **values: Any) -> None:
        values["updated_at"] = self._clock()
        with self._session(op) as db:
            result = db.execute(
                update(SyncEvent).where(SyncEvent.id == event_id).values(**values)
            )
            if result.rowcount == 0:
                raise NotFoundError(event_id)

    # ── writes ───────────────────────────────────────────────────────────────

    def insert(
        self,
        event_type: str,
        payload: Any,
        source: str = "paycor",
        external_event_id: Optional[str] = None,
    ) -> int:
        """Persist a new Pending event and return its id."""
        body = _dump_payload(payload)
        now = self._clock()
        row = SyncEvent(
            event_type=event_type,
            source=source,
            external_event_id=external_event_id,
            payload=body,
            status=EventStatus.PENDING,
            created_at=now,
            updated_at=now,
            retry_count=0,
            error_detail="",
        )
        with self._session("insert") as db:
            db.add(row)
            db.flush()
            event_id = row.id
        return event_id

    def mark_processing(self, event_id: int) -> None:
        self._update("mark_processing", event_id, status=EventStatus.PROCESSING)

    def claim(self, event_id: int) -> bool:
        """Atomically move one due event Pending -> Processing.

        Returns False when another consumer got there first or the event is
        still backing off.
        """
        now = self._clock()
        with self._session("claim") as db:
            result = db.execute(
                update(SyncEvent)
                .where(
                    SyncEvent.id == event_id,
                    SyncEvent.status == EventStatus.PENDING,
                    or_(SyncEvent.next_attempt_at.is_(None), SyncEvent.next_attempt_at <= now),
                )
                .values(status=EventStatus.PROCESSING, updated_at=now)
            )
            if result.rowcount == 1:
                return True
            self._require_row(db, event_id)
            return False

    def mark_success(self, event_id: int, external_object_id: Optional[str]) -> None:
        self._update(
            "mark_success",
            event_id,
            status=EventStatus.SUCCESS,
            error_detail="",
            external_object_id=external_object_id,
            next_attempt_at=None,
        )

    def mark_failed(self, event_id: int, error_detail: Optional[str]) -> None:
        self._update(
            "mark_failed",
            event_id,
            status=EventStatus.FAILED,
            error_detail=truncate_detail(error_detail),
        )

    def increment_retry_count(self, event_id: int) -> None:
        self._update("increment_retry_count", event_id, retry_count=SyncEvent.retry_count + 1)

    def record_failure(
        self,
        event_id: int,
        error_detail: Optional[str],
        next_attempt: Optional[Callable[[int], Optional[datetime]]] = None,
    ) -> Event:
        """MarkFailed + IncrementRetryCount in a single transaction.

        ``next_attempt`` receives the new retry count; a datetime puts the
        event back to Pending, eligible again from that moment.
        """
        now = self._clock()
        with self._session("record_failure") as db:
            result = db.execute(
                update(SyncEvent)
                .where(SyncEvent.id == event_id)
                .values(
                    status=EventStatus.FAILED,
                    error_detail=truncate_detail(error_detail),
                    retry_count=SyncEvent.retry_count + 1,
                    next_attempt_at=None,
                    updated_at=now,
                )
            )
            if result.rowcount == 0:
                raise NotFoundError(event_id)
            row = self._require_row(db, event_id)
            when = next_attempt(row.retry_count) if next_attempt else None
            if when is not None:
                row.status = EventStatus.PENDING
                row.next_attempt_at = when
                db.flush()
            return Event.from_row(row)

    def requeue(self, event_id: int) -> Event:
        """Operator re-enqueue: back to Pending and due immediately, any backoff dropped."""
        with self._session("requeue") as db:
            row = self._require_row(db, event_id)
            if row.status == EventStatus.SUCCESS:
                raise ValidationError(f"sync event {event_id} already succeeded")
            row.status = EventStatus.PENDING
            row.next_attempt_at = None
            row.updated_at = self._clock()
            db.flush()
            self._log.info("sync event %s re-enqueued (retries so far: %d)", event_id, row.retry_count)
            return Event.from_row(row)

    def reclaim_stale(self, older_than: timedelta) -> int:
        """Return Processing events untouched for ``older_than`` to Pending."""
        now = self._clock()
        with self._session("reclaim_stale") as db:
            result = db.execute(
                update(SyncEvent)
                .where(
                    SyncEvent.status == EventStatus.PROCESSING,
                    SyncEvent.updated_at < now - older_than,
                )
                .values(status=EventStatus.PENDING, updated_at=now)
            )
            return result.rowcount or 0

    # ── reads ────────────────────────────────────────────────────────────────

    def get(self, event_id: int) -> Event:
        with self._session("get") as db:
            return Event.from_row(self._require_row(db, event_id))

    def fetch_pending_batch(self, limit: int) -> List[Event]:
        """Up to ``limit`` due Pending events, oldest first (ties by id)."""
        if limit <= 0:
            return []
        now = self._clock()
        stmt = (
            select(SyncEvent)
            .where(
                SyncEvent.status == EventStatus.PENDING,
                or_(SyncEvent.next_attempt_at.is_(None), SyncEvent.next_attempt_at <= now),
            )
            .order_by(SyncEvent.created_at.asc(), SyncEvent.id.asc())
            .limit(limit)
        )
        with self._session("fetch_pending_batch") as db:
            return [Event.from_row(r) for r in db.scalars(stmt)]

    def list_events(self, status: Optional[EventStatus] = None, limit: int = 50) -> List[Event]:
        stmt = select(SyncEvent).order_by(SyncEvent.id.desc()).limit(limit)
        if status is not None:
            stmt = stmt.where(SyncEvent.status == status)
        with self._session("list_events") as db:
            return [Event.from_row(r) for r in db.scalars(stmt)]

    def count_by_status(self) -> Dict[str, int]:
        counts = {s.value: 0 for s in EventStatus}
        with self._session("count_by_status") as db:
            for status, n in db.execute(
                select(SyncEvent.status, func.count(SyncEvent.id)).group_by(SyncEvent.status)
            ):
                counts[EventStatus(status).value] = n
        return counts

    def ping(self) -> None:
        """Raise PersistenceError when the store cannot be reached."""
        with self._session("ping") as db:
            db.execute(text("SELECT 1"))
