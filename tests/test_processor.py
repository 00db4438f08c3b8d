"""BatchProcessor and QueueWorker behaviour against a real SQLite store."""

import asyncio
import time
from datetime import timedelta

import pytest

from app.errors import PersistenceError
from app.models.sync_queue import EventStatus
from app.services.db import make_engine, make_session_factory
from app.services.event_store import EventStore
from app.services.processor import (
    BatchProcessor,
    QueueWorker,
    RetryPolicy,
    SyncFailure,
    SyncSuccess,
)


class RecordingHandler:
    """Async handler scripted by event name."""

    def __init__(self, outcomes=None):
        self.outcomes = outcomes or {}
        self.seen = []

    async def __call__(self, event):
        self.seen.append(event.id)
        outcome = self.outcomes.get(event.payload.get("name"), SyncSuccess(f"OBJ-{event.id}"))
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _insert(store, name):
    return store.insert("employee.updated", {"eventType": "employee.updated", "name": name})


async def test_empty_queue_is_a_no_op(store):
    handler = RecordingHandler()
    result = await BatchProcessor(store, handler).run_batch()
    assert result.claimed == 0
    assert handler.seen == []


async def test_mixed_outcomes_do_not_abort_the_batch(store):
    a, b, c = (_insert(store, n) for n in "abc")
    handler = RecordingHandler({"b": SyncFailure("Jira API returned 500")})

    result = await BatchProcessor(store, handler, batch_size=10).run_batch()

    assert handler.seen == [a, b, c]
    assert (result.claimed, result.succeeded, result.failed) == (3, 2, 1)
    assert store.get(a).status is EventStatus.SUCCESS
    assert store.get(a).external_object_id == f"OBJ-{a}"
    failed = store.get(b)
    assert failed.status is EventStatus.FAILED
    assert failed.retry_count == 1
    assert failed.error_detail == "Jira API returned 500"
    assert store.get(c).status is EventStatus.SUCCESS


async def test_batch_size_bounds_each_run(store):
    a, b, c = (_insert(store, n) for n in "abc")
    handler = RecordingHandler({"b": SyncFailure("nope")})
    processor = BatchProcessor(store, handler, batch_size=2)

    first = await processor.run_batch()
    assert first.event_ids == [a, b]
    assert store.get(c).status is EventStatus.PENDING

    second = await processor.run_batch()
    assert second.event_ids == [c]
    assert store.get(b).status is EventStatus.FAILED


async def test_long_failure_message_is_truncated(store):
    a = _insert(store, "a")
    handler = RecordingHandler({"a": SyncFailure("x" * 600)})
    await BatchProcessor(store, handler).run_batch()
    event = store.get(a)
    assert event.status is EventStatus.FAILED
    assert len(event.error_detail) == 500
    assert event.retry_count == 1


async def test_handler_exception_becomes_failure(store):
    a, b = _insert(store, "a"), _insert(store, "b")
    handler = RecordingHandler({"a": RuntimeError("connection reset")})

    result = await BatchProcessor(store, handler).run_batch()

    assert (result.succeeded, result.failed) == (1, 1)
    event = store.get(a)
    assert event.status is EventStatus.FAILED
    assert event.error_detail == "connection reset"
    assert store.get(b).status is EventStatus.SUCCESS


async def test_plain_function_handler(store):
    a = _insert(store, "a")
    result = await BatchProcessor(store, lambda event: SyncSuccess(None)).run_batch()
    assert result.succeeded == 1
    event = store.get(a)
    assert event.status is EventStatus.SUCCESS
    assert event.external_object_id is None


async def test_unsupported_outcome_is_a_failure(store):
    a = _insert(store, "a")
    await BatchProcessor(store, lambda event: "done").run_batch()
    assert store.get(a).status is EventStatus.FAILED


async def test_terminal_policy_keeps_failed_events_out(store):
    a = _insert(store, "a")
    handler = RecordingHandler({"a": SyncFailure("down")})
    processor = BatchProcessor(store, handler, retry_policy=RetryPolicy(mode="terminal"))
    await processor.run_batch()
    await processor.run_batch()
    assert handler.seen == [a]
    assert store.get(a).retry_count == 1


async def test_requeue_policy_retries_after_backoff(store, clock):
    a = _insert(store, "a")
    handler = RecordingHandler({"a": SyncFailure("down")})
    policy = RetryPolicy(mode="requeue", max_retries=2, backoff_seconds=10, backoff_max_seconds=60)
    processor = BatchProcessor(store, handler, retry_policy=policy, clock=clock)

    first = await processor.run_batch()
    assert first.requeued == 1
    event = store.get(a)
    assert event.status is EventStatus.PENDING
    assert event.retry_count == 1
    assert event.next_attempt_at is not None

    # not due yet
    assert (await processor.run_batch()).claimed == 0

    clock.advance(11)
    second = await processor.run_batch()
    assert second.claimed == 1
    assert second.requeued == 0
    event = store.get(a)
    assert event.status is EventStatus.FAILED
    assert event.retry_count == 2
    assert handler.seen == [a, a]


def test_backoff_is_exponential_and_capped():
    policy = RetryPolicy(mode="requeue", max_retries=10, backoff_seconds=30, backoff_max_seconds=100)
    assert policy.backoff(1) == timedelta(seconds=30)
    assert policy.backoff(2) == timedelta(seconds=60)
    assert policy.backoff(3) == timedelta(seconds=100)


async def test_success_after_earlier_failure_clears_error(store):
    a = _insert(store, "a")
    handler = RecordingHandler({"a": SyncFailure("first")})
    processor = BatchProcessor(store, handler)
    await processor.run_batch()

    store.requeue(a)
    handler.outcomes = {}
    await processor.run_batch()

    event = store.get(a)
    assert event.status is EventStatus.SUCCESS
    assert event.error_detail == ""
    assert event.retry_count == 1


async def test_stale_processing_events_are_reclaimed(store, clock):
    a = _insert(store, "a")
    store.claim(a)
    clock.advance(3600)
    handler = RecordingHandler()
    processor = BatchProcessor(store, handler, stale_after=timedelta(minutes=15))

    result = await processor.run_batch()

    assert result.reclaimed == 1
    assert handler.seen == [a]
    assert store.get(a).status is EventStatus.SUCCESS


async def test_event_claimed_elsewhere_is_skipped(store):
    a, b = _insert(store, "a"), _insert(store, "b")

    class Interloper(RecordingHandler):
        async def __call__(self, event):
            if event.id == a:
                # a competing consumer grabs the next event mid-batch
                store.claim(b)
            return await super().__call__(event)

    handler = Interloper()
    result = await BatchProcessor(store, handler).run_batch()

    assert handler.seen == [a]
    assert (result.claimed, result.skipped) == (1, 1)
    assert store.get(b).status is EventStatus.PROCESSING


async def test_store_failure_aborts_the_batch(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'nope' / 'q.db'}")
    broken = EventStore(make_session_factory(engine))
    with pytest.raises(PersistenceError):
        await BatchProcessor(broken, RecordingHandler()).run_batch()


def test_batch_size_must_be_positive(store):
    with pytest.raises(ValueError):
        BatchProcessor(store, RecordingHandler(), batch_size=0)


async def test_worker_processes_when_woken(store):
    a = _insert(store, "a")
    processor = BatchProcessor(store, RecordingHandler())
    worker = QueueWorker(processor, poll_interval=30)
    await worker.start()
    try:
        worker.wake()
        for _ in range(100):
            if store.get(a).status is EventStatus.SUCCESS:
                break
            await asyncio.sleep(0.01)
    finally:
        await worker.stop()
    assert store.get(a).status is EventStatus.SUCCESS
    assert not worker.running


async def test_worker_survives_a_failing_batch(store):
    calls = []

    class FlakyProcessor:
        batch_size = 10

        async def run_batch(self):
            calls.append(1)
            if len(calls) == 1:
                raise PersistenceError("database is locked")
            return await BatchProcessor(store, RecordingHandler()).run_batch()

    a = _insert(store, "a")
    worker = QueueWorker(FlakyProcessor(), poll_interval=0.01)
    await worker.start()
    try:
        for _ in range(200):
            if store.get(a).status is EventStatus.SUCCESS:
                break
            await asyncio.sleep(0.01)
    finally:
        await worker.stop()
    assert len(calls) >= 2
    assert store.get(a).status is EventStatus.SUCCESS


class SlowStore(EventStore):
    def fetch_pending_batch(self, limit):
        time.sleep(0.3)
        return super().fetch_pending_batch(limit)


async def test_slow_store_does_not_stall_the_event_loop(session_factory, clock, loop_stall):
    slow = SlowStore(session_factory, clock=clock)
    a = _insert(slow, "a")

    result, gap = await loop_stall(BatchProcessor(slow, RecordingHandler()).run_batch())

    assert result.event_ids == [a]
    assert gap < 0.2


async def test_worker_wake_from_another_thread(store):
    a = _insert(store, "a")
    worker = QueueWorker(BatchProcessor(store, RecordingHandler()), poll_interval=30)
    await worker.start()
    try:
        await asyncio.to_thread(worker.wake)
        for _ in range(100):
            if store.get(a).status is EventStatus.SUCCESS:
                break
            await asyncio.sleep(0.01)
    finally:
        await worker.stop()
    assert store.get(a).status is EventStatus.SUCCESS
