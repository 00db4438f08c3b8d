# app/routes/webhooks.py
from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from ..container import Services, get_services
from ..errors import PersistenceError, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter()

# ───────────────────────── Signature ──────────────────────────

def _verify_signature(secret: str, raw: bytes, header_sig: Optional[str]) -> None:
    """HMAC-SHA256 check if WEBHOOK_SECRET is set; otherwise no-op."""
    if not secret:
        return
    if not header_sig:
        raise HTTPException(status_code=401, detail="Missing signature")
    calc = hmac.new(secret.encode(), raw, hashlib.sha256).hexdigest()
    sig = header_sig.strip()
    if sig.lower().startswith("sha256="):
        sig = sig[7:]
    if not hmac.compare_digest(calc, sig.lower()):
        raise HTTPException(status_code=401, detail="Invalid signature")

# ───────────────────────── Routes ─────────────────────────────

@router.post("/webhooks/{source}", status_code=202, summary="Inbound HR change notification")
async def receive_webhook(source: str, request: Request, svc: Services = Depends(get_services)):
    """
    Stores the notification and answers 202 right away; syncing happens later
    in the queue processor.
    """
    raw = await request.body()
    _verify_signature(
        svc.settings.webhook_secret,
        raw,
        request.headers.get(svc.settings.webhook_signature_header),
    )

    try:
        body = json.loads(raw or b"null")
    except (UnicodeDecodeError, ValueError):
        logger.warning("webhook %s: body is not valid JSON", source)
        raise HTTPException(status_code=400, detail="Invalid request payload")

    try:
        event_id = await asyncio.to_thread(svc.ingest.enqueue, body, source)
    except ValidationError as e:
        logger.warning("webhook %s rejected: %s", source, e)
        raise HTTPException(status_code=400, detail=str(e))
    except PersistenceError:
        logger.exception("webhook %s: failed to store event", source)
        raise HTTPException(status_code=500, detail="Failed to process event")

    return JSONResponse(
        status_code=202,
        content={"status": "accepted", "message": "Event queued for processing", "id": event_id},
    )
