# app/services/ingest.py
from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from pydantic import ValidationError as PydanticValidationError

from ..errors import ValidationError
from ..schemas.webhook import WebhookNotification
from .event_store import EventStore

DEFAULT_SOURCE = "paycor"


class IngestionAdapter:
    """Validate an inbound notification and enqueue it. Never waits for processing."""

    def __init__(
        self,
        store: EventStore,
        on_enqueued: Optional[Callable[[int], None]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._store = store
        self._on_enqueued = on_enqueued
        self._log = logger or logging.getLogger(__name__)

    @staticmethod
    def validate(notification: Any) -> WebhookNotification:
        if not isinstance(notification, dict):
            raise ValidationError("notification body must be a JSON object")
        try:
            return WebhookNotification.model_validate(notification)
        except PydanticValidationError as e:
            first = e.errors()[0] if e.errors() else {}
            raise ValidationError(first.get("msg") or "invalid notification") from e

    def enqueue(self, notification: Any, source: str = DEFAULT_SOURCE) -> int:
        """Store the notification verbatim as a Pending event; returns the event id.

        Raises ValidationError (nothing stored) or PersistenceError.
        """
        meta = self.validate(notification)
        event_id = self._store.insert(
            meta.event_type,
            notification,
            source=(source or DEFAULT_SOURCE)[:64],
            external_event_id=meta.event_id,
        )
        self._log.info("accepted event %s type=%s source=%s", event_id, meta.event_type, source)
        if self._on_enqueued:
            self._on_enqueued(event_id)
        return event_id
