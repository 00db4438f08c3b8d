"""Shared fixtures: temp-file SQLite store, controllable clock, app settings."""

import asyncio
import time
from datetime import datetime, timedelta, timezone

import pytest

from app.config import Settings
from app.services.db import init_db, make_engine, make_session_factory
from app.services.event_store import EventStore


class FakeClock:
    """Deterministic UTC clock; every reading advances 1 ms so inserts never tie."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(milliseconds=1)
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'sync_queue.db'}"


@pytest.fixture
def session_factory(db_url):
    engine = make_engine(db_url)
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(session_factory, clock) -> EventStore:
    return EventStore(session_factory, clock=clock)


@pytest.fixture
def settings(db_url) -> Settings:
    return Settings(
        _env_file=None,
        database_url=db_url,
        app_version="1.2.3",
        jira_assets_url="https://jira.example.test/rest/assets/1.0",
        jira_admin_email="admin@example.test",
        jira_api_token="token",
        jira_employee_object_type_id="12",
        jira_role_object_type_id="13",
        paycor_client_id="cid",
        paycor_client_secret="secret",
        paycor_subscription_key="sub-key",
        paycor_refresh_token="refresh-1",
        paycor_token_url="https://auth.paycor.test/token",
        paycor_api_base_url="https://api.paycor.test/v1",
        paycor_legal_entity_id="4242",
        stale_processing_seconds=0,
    )


@pytest.fixture
def app(settings):
    from app.main import create_app

    return create_app(settings)


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient

    return TestClient(app)


@pytest.fixture
def services(app):
    return app.state.services


@pytest.fixture
def loop_stall():
    """Await a coroutine while a 5 ms ticker runs; return (result, longest tick gap)."""

    async def measure(coro):
        gaps = []
        done = asyncio.Event()

        async def ticker():
            last = time.perf_counter()
            while not done.is_set():
                await asyncio.sleep(0.005)
                now = time.perf_counter()
                gaps.append(now - last)
                last = now

        task = asyncio.create_task(ticker())
        await asyncio.sleep(0)
        try:
            result = await coro
        finally:
            done.set()
            await task
        return result, max(gaps, default=0.0)

    return measure
