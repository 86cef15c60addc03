# app/api/v1/routers/webhook.py
from __future__ import annotations

import json

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from app.api.v1.dependencies import call_service
from app.services.call_service import CallService

router = APIRouter(prefix="/api/v1/webhook", tags=["webhook"])

logger = structlog.get_logger("webhook")

@router.post("")
async def receive_webhook(request: Request, svc: CallService = Depends(call_service)):
    """
    Run notifications pushed by the call platform, either CloudEvents
    envelopes or the run object itself (bare or under `run` / `data`).
    """
    raw = await request.body()
    try:
        payload = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        logger.warning("webhook.invalid_json", error=str(e))
        return JSONResponse(status_code=400, content={"ok": False, "error": "invalid JSON body"})

    result = await svc.ingest_webhook_payload(payload)
    if result.missing_correlation_id:
        return {"ok": True, "note": "no run id in payload; nothing stored", "keys": result.keys}

    return {"ok": True, "runId": result.record.id, "outcome": result.record.outcome}

@router.get("")
async def webhook_status(svc: CallService = Depends(call_service)):
    runs = svc.list_records()
    return {
        "status": "webhook endpoint active",
        "runsReceived": len(runs),
        "latestRun": runs[0].public() if runs else None,
    }
