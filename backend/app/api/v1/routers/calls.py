# app/api/v1/routers/calls.py
from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Query

from app.api.v1.dependencies import call_service
from app.core.errors import UpstreamError
from app.services.call_service import CallService

router = APIRouter(prefix="/api/v1/calls", tags=["calls"])

logger = structlog.get_logger("calls")

@router.get("")
async def list_calls(refresh: bool = Query(False, description="Pull from the platform API even when webhook data exists"),
                     svc: CallService = Depends(call_service)):
    """
    Live call list plus dashboard stats. Webhook data is served as is; the
    platform API is only polled when nothing has been pushed yet (or on refresh).
    """
    calls = svc.list_records()
    source = "webhook" if calls else "empty"
    error = None

    if (refresh or not calls) and svc.client is not None:
        try:
            calls = await svc.fetch_and_reconcile_from_upstream()
            source = "live"
        except UpstreamError as e:
            logger.warning("upstream.list_failed", error=str(e))
            error = str(e)

    body = {
        "calls": [c.public() for c in calls],
        "stats": svc.stats(calls).model_dump(by_alias=True),
        "source": source,
    }
    if error:
        body["error"] = error
    return body
