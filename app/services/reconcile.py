# app/services/reconcile.py
from __future__ import annotations

import asyncio
import logging

from .ingest import IngestionAdapter
from .paycor_api import PaycorClient

logger = logging.getLogger(__name__)

RECONCILE_EVENT_TYPE = "employee.reconcile"
RECONCILE_SOURCE = "reconcile"


async def reconcile(paycor: PaycorClient, ingest: IngestionAdapter) -> int:
    """Enqueue one sync event per Paycor employee. Returns the number enqueued."""
    employees = await paycor.fetch_all_employees()
    count = 0
    for emp in employees:
        body = emp.model_dump(mode="json", by_alias=False, exclude_none=True)
        notification = {
            "eventType": RECONCILE_EVENT_TYPE,
            "eventId": f"reconcile-{emp.id}" if emp.id else None,
            "body": body,
        }
        await asyncio.to_thread(ingest.enqueue, notification, RECONCILE_SOURCE)
        count += 1
    logger.info("reconcile enqueued %d employees", count)
    return count
