# app/routes/queue.py
from __future__ import annotations

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from ..container import Services, get_services
from ..errors import NotFoundError, PersistenceError, UpstreamError, ValidationError
from ..models.sync_queue import EventStatus
from ..services.reconcile import reconcile

logger = logging.getLogger(__name__)

def require_admin(
    x_admin_token: Optional[str] = Header(None),
    svc: Services = Depends(get_services),
) -> None:
    """X-Admin-Token check if ADMIN_TOKEN is set; otherwise no-op."""
    expected = svc.settings.admin_token
    if not expected:
        return
    if not x_admin_token or not hmac.compare_digest(expected, x_admin_token):
        raise HTTPException(status_code=401, detail="Invalid admin token")

router = APIRouter(prefix="/queue", dependencies=[Depends(require_admin)])

def _store_error(e: PersistenceError) -> HTTPException:
    logger.error("queue route: store failure: %s", e)
    return HTTPException(status_code=500, detail="Queue store unavailable")

@router.get("/events")
def list_events(
    status: Optional[EventStatus] = Query(None, description="Pending | Processing | Success | Failed"),
    limit: int = Query(50, ge=1, le=500),
    svc: Services = Depends(get_services),
):
    try:
        return [e.to_dict() for e in svc.store.list_events(status=status, limit=limit)]
    except PersistenceError as e:
        raise _store_error(e)

@router.get("/events/{event_id}")
def get_event(event_id: int, svc: Services = Depends(get_services)):
    try:
        return svc.store.get(event_id).to_dict()
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PersistenceError as e:
        raise _store_error(e)

@router.post("/events/{event_id}/requeue")
def requeue_event(event_id: int, svc: Services = Depends(get_services)):
    """Put a Failed (or stuck Processing) event back to Pending."""
    try:
        event = svc.store.requeue(event_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except PersistenceError as e:
        raise _store_error(e)
    if svc.worker:
        svc.worker.wake()
    return event.to_dict()

@router.get("/stats")
def stats(svc: Services = Depends(get_services)):
    try:
        return svc.store.count_by_status()
    except PersistenceError as e:
        raise _store_error(e)

@router.post("/process")
async def process_batch(svc: Services = Depends(get_services)):
    """Run one batch now (for cron/external schedulers)."""
    try:
        result = await svc.processor.run_batch()
    except (PersistenceError, NotFoundError) as e:
        logger.exception("manual batch run failed")
        raise HTTPException(status_code=500, detail=str(e))
    return result.as_dict()

@router.post("/reconcile", status_code=202)
async def run_reconcile(svc: Services = Depends(get_services)):
    """Enqueue every Paycor employee for a full re-sync."""
    if svc.paycor is None:
        raise HTTPException(status_code=400, detail="Paycor is not configured")
    try:
        count = await reconcile(svc.paycor, svc.ingest)
    except UpstreamError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except PersistenceError as e:
        raise _store_error(e)
    return {"status": "accepted", "enqueued": count}
