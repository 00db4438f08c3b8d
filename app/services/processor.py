# app/services/processor.py
"""Batch processing of queued sync events.

One ``run_batch`` call pulls a bounded batch of due Pending events, claims
each one, hands it to the sync handler and records the outcome. A failing
event never aborts the batch; a failing store does.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Optional, Union

from ..config import Settings
from .event_store import Clock, Event, EventStore, truncate_detail, utcnow

@dataclass(frozen=True)
class SyncSuccess:
    external_object_id: Optional[str] = None

@dataclass(frozen=True)
class SyncFailure:
    message: str

SyncOutcome = Union[SyncSuccess, SyncFailure]
SyncHandler = Callable[[Event], Union[SyncOutcome, Awaitable[SyncOutcome]]]

@dataclass(frozen=True)
class RetryPolicy:
    """
    terminal: a Failed event stays Failed until an operator re-enqueues it.
    requeue:  a Failed event goes back to Pending after an exponential backoff
              until it has failed ``max_retries`` times.
    """
    mode: str = "terminal"
    max_retries: int = 5
    backoff_seconds: float = 30.0
    backoff_max_seconds: float = 3600.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            mode=settings.retry_policy,
            max_retries=settings.max_retries,
            backoff_seconds=settings.retry_backoff_seconds,
            backoff_max_seconds=settings.retry_backoff_max_seconds,
        )

    def backoff(self, retry_count: int) -> timedelta:
        delay = self.backoff_seconds * (2 ** max(retry_count - 1, 0))
        return timedelta(seconds=min(delay, self.backoff_max_seconds))

    def next_attempt(self, now: datetime, retry_count: int) -> Optional[datetime]:
        if self.mode != "requeue" or retry_count >= self.max_retries:
            return None
        return now + self.backoff(retry_count)

@dataclass
class BatchResult:
    claimed: int = 0
    succeeded: int = 0
    failed: int = 0
    requeued: int = 0
    skipped: int = 0
    reclaimed: int = 0
    event_ids: list[int] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "claimed": self.claimed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "requeued": self.requeued,
            "skipped": self.skipped,
            "reclaimed": self.reclaimed,
        }

class BatchProcessor:
    def __init__(
        self,
        store: EventStore,
        handler: SyncHandler,
        batch_size: int = 10,
        retry_policy: Optional[RetryPolicy] = None,
        stale_after: Optional[timedelta] = None,
        clock: Clock = utcnow,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._store = store
        self._handler = handler
        self._batch_size = batch_size
        self._policy = retry_policy or RetryPolicy()
        self._stale_after = stale_after
        self._clock = clock
        self._log = logger or logging.getLogger(__name__)

    @property
    def batch_size(self) -> int:
        return self._batch_size

    async def _invoke(self, event: Event) -> SyncOutcome:
        try:
            outcome = self._handler(event)
            if inspect.isawaitable(outcome):
                outcome = await outcome
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._log.exception("sync handler raised for event %s (%s)", event.id, event.event_type)
            return SyncFailure(str(e) or type(e).__name__)
        if isinstance(outcome, (SyncSuccess, SyncFailure)):
            return outcome
        return SyncFailure(f"handler returned unsupported outcome {type(outcome).__name__}")

    async def run_batch(self) -> BatchResult:
        """Process one bounded batch and return. Store errors propagate.

        Store calls run in worker threads so a slow commit never stalls the loop.
        """
        result = BatchResult()

        if self._stale_after:
            result.reclaimed = await asyncio.to_thread(self._store.reclaim_stale, self._stale_after)
            if result.reclaimed:
                self._log.warning("reclaimed %d stale processing events", result.reclaimed)

        events = await asyncio.to_thread(self._store.fetch_pending_batch, self._batch_size)
        if not events:
            return result
        self._log.info("processing batch of %d events", len(events))

        for event in events:
            if not await asyncio.to_thread(self._store.claim, event.id):
                # another consumer owns it
                result.skipped += 1
                continue
            result.claimed += 1
            result.event_ids.append(event.id)

            outcome = await self._invoke(event)

            if isinstance(outcome, SyncSuccess):
                await asyncio.to_thread(self._store.mark_success, event.id, outcome.external_object_id)
                result.succeeded += 1
                self._log.info(
                    "event %s (%s) synced -> %s",
                    event.id, event.event_type, outcome.external_object_id or "-",
                )
                continue

            stored = await asyncio.to_thread(
                self._store.record_failure,
                event.id,
                outcome.message,
                next_attempt=lambda n: self._policy.next_attempt(self._clock(), n),
            )
            result.failed += 1
            if stored.next_attempt_at is not None:
                result.requeued += 1
                self._log.warning(
                    "event %s failed (attempt %d), retry at %s: %s",
                    event.id, stored.retry_count, stored.next_attempt_at.isoformat(),
                    truncate_detail(outcome.message),
                )
            else:
                self._log.warning(
                    "event %s failed (attempt %d): %s",
                    event.id, stored.retry_count, truncate_detail(outcome.message),
                )

        self._log.info(
            "batch done: claimed=%d ok=%d failed=%d requeued=%d skipped=%d",
            result.claimed, result.succeeded, result.failed, result.requeued, result.skipped,
        )
        return result

class QueueWorker:
    """Long-lived loop: run a batch whenever woken or every ``poll_interval``."""

    def __init__(
        self,
        processor: BatchProcessor,
        poll_interval: float = 5.0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._processor = processor
        self._poll_interval = poll_interval
        self._log = logger or logging.getLogger(__name__)
        self._wake = asyncio.Event()
        self._task: Optional[asyncio.Task[None]] = None
        self._loop_ref: Optional[asyncio.AbstractEventLoop] = None
        self._stopped = False

    def wake(self) -> None:
        """Safe to call from any thread."""
        loop = self._loop_ref
        if loop is None or loop.is_closed():
            self._wake.set()
            return
        loop.call_soon_threadsafe(self._wake.set)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        self._stopped = False
        self._loop_ref = asyncio.get_running_loop()
        self._task = asyncio.create_task(self._loop())
        self._log.info("queue worker started (poll every %.1fs)", self._poll_interval)

    async def stop(self) -> None:
        """Cancel the loop; an event mid-handler stays Processing until reclaimed."""
        self._stopped = True
        self._wake.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._log.info("queue worker stopped")

    async def _loop(self) -> None:
        while not self._stopped:
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self._poll_interval)
            except asyncio.TimeoutError:
                pass
            self._wake.clear()
            if self._stopped:
                break
            try:
                result = await self._processor.run_batch()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # store unreachable: try again next tick
                self._log.exception("queue worker batch failed: %s", e)
                continue
            # a full batch likely means more work is waiting
            if result.claimed + result.skipped >= self._processor.batch_size:
                self._wake.set()
