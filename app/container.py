# app/container.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Request
from sqlalchemy.engine import Engine

from .config import Settings
from .services.event_store import EventStore
from .services.ingest import IngestionAdapter
from .services.jira_assets_api import JiraAssetsClient
from .services.paycor_api import PaycorClient
from .services.processor import BatchProcessor, QueueWorker


@dataclass
class Services:
    """Everything a request handler may need, built once by create_app."""
    settings: Settings
    engine: Engine
    store: EventStore
    ingest: IngestionAdapter
    processor: BatchProcessor
    paycor: Optional[PaycorClient] = None
    jira: Optional[JiraAssetsClient] = None
    worker: Optional[QueueWorker] = None


def get_services(request: Request) -> Services:
    return request.app.state.services
