# app/main.py
from dotenv import load_dotenv; load_dotenv()

import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.trustedhost import TrustedHostMiddleware

from .config import Settings, get_settings
from .container import Services
from .logging_config import setup_logging
from .routes.health import router as health_router
from .routes.queue import router as queue_router
from .routes.webhooks import router as webhooks_router
from .services.credentials import CredentialStore
from .services.crypto import Cipher
from .services.db import init_db, make_engine, make_session_factory
from .services.event_store import EventStore
from .services.ingest import IngestionAdapter
from .services.jira_assets_api import JiraAssetsClient
from .services.paycor_api import PaycorClient
from .services.processor import BatchProcessor, QueueWorker, RetryPolicy
from .services.sync_handler import EmployeeSyncHandler

logger = logging.getLogger(__name__)


def build_services(settings: Settings) -> Services:
    engine = make_engine(
        settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_recycle=settings.db_pool_recycle,
    )
    # ── DB init (dev-friendly; disable with DB_CREATE_ALL=0 and run alembic) ──
    if settings.db_create_all:
        init_db(engine)
    session_factory = make_session_factory(engine)

    store = EventStore(session_factory)
    credentials = CredentialStore(session_factory, Cipher.from_keys(settings.encryption_keys))

    paycor = PaycorClient(settings, credentials) if settings.paycor_configured else None
    jira = JiraAssetsClient(settings) if settings.jira_configured else None
    if paycor is None:
        logger.warning("Paycor is not configured; events without inline employee data will fail")
    if jira is None:
        logger.warning("Jira Assets is not configured; employee events will fail until it is")

    handler = EmployeeSyncHandler(jira, paycor, settings.jira_attribute_ids)
    stale = settings.stale_processing_seconds
    processor = BatchProcessor(
        store,
        handler,
        batch_size=settings.batch_size,
        retry_policy=RetryPolicy.from_settings(settings),
        stale_after=timedelta(seconds=stale) if stale > 0 else None,
    )
    worker = QueueWorker(processor, poll_interval=settings.worker_poll_interval) if settings.worker_enabled else None
    ingest = IngestionAdapter(store, on_enqueued=(lambda _id: worker.wake()) if worker else None)

    return Services(
        settings=settings,
        engine=engine,
        store=store,
        ingest=ingest,
        processor=processor,
        paycor=paycor,
        jira=jira,
        worker=worker,
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.log_level, settings.log_format)
    services = build_services(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if services.worker:
            await services.worker.start()
        try:
            yield
        finally:
            if services.worker:
                await services.worker.stop()
            for client in (services.paycor, services.jira):
                if client is not None:
                    await client.aclose()
            services.engine.dispose()

    app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)
    app.state.services = services

    # ── Middleware: Trusted Hosts ─────────────────────────────────────────────
    if settings.trusted_hosts_list != ["*"]:
        app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_hosts_list)

    # ── Routers ───────────────────────────────────────────────────────────────
    app.include_router(webhooks_router, tags=["webhooks"])
    app.include_router(health_router, tags=["health"])
    app.include_router(queue_router, tags=["queue"])
    return app


def __getattr__(name: str):
    # `uvicorn app.main:app` builds the default app on first access, so
    # importing create_app alone never touches the configured database
    if name == "app":
        application = create_app()
        globals()["app"] = application
        return application
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
