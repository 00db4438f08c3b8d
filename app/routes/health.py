# app/routes/health.py
from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..container import Services, get_services
from ..errors import PersistenceError, UpstreamError

logger = logging.getLogger(__name__)

router = APIRouter()

@router.get("/health")
async def health(svc: Services = Depends(get_services)):
    """200 when the queue store and Jira Assets are reachable, 503 otherwise."""
    try:
        await asyncio.to_thread(svc.store.ping)
    except PersistenceError as e:
        logger.warning("health: store unreachable: %s", e)
        return JSONResponse(status_code=503, content={"status": "error", "message": "Database connection failed"})

    if svc.jira is None:
        return JSONResponse(status_code=503, content={"status": "error", "message": "Jira is not configured"})
    try:
        await svc.jira.check_connection()
    except UpstreamError as e:
        logger.warning("health: jira unreachable: %s", e)
        return JSONResponse(status_code=503, content={"status": "error", "message": "Jira connection failed"})

    return {"status": "healthy", "version": svc.settings.app_version}
