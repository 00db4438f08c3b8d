# app/errors.py
from __future__ import annotations
from typing import Optional


class SyncQueueError(Exception):
    """Base exception for the sync queue service."""


class ValidationError(SyncQueueError):
    """Inbound notification is malformed or incomplete. Never persisted."""


class PersistenceError(SyncQueueError):
    """Store unreachable, write failed, or payload could not be serialized."""


class NotFoundError(SyncQueueError):
    """A status update referenced an event id that does not exist."""

    def __init__(self, event_id: int):
        self.event_id = event_id
        super().__init__(f"sync event {event_id} not found")


class HandlerError(SyncQueueError):
    """Downstream synchronization failed for one event."""


class UpstreamError(HandlerError):
    """Remote API answered with a non-2xx status or could not be reached."""

    def __init__(self, service: str, message: str, status_code: Optional[int] = None, body: str = ""):
        self.service = service
        self.status_code = status_code
        self.body = body
        detail = f"{service}: {message}"
        if status_code is not None:
            detail += f" (status {status_code})"
        if body:
            detail += f": {body[:300]}"
        super().__init__(detail)
