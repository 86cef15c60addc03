from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.api.v1.dependencies import call_service
from app.core.errors import MissingPhoneError, UnknownOutcomeError
from app.schemas.call import CallResultIn
from app.services.call_service import CallService
from app.services.classification import resolve_tag

router = APIRouter(prefix="/api/v1/call-result", tags=["call-result"])

NO_STORE = {"Cache-Control": "no-store"}

@router.post("")
async def receive_call_result(payload: CallResultIn, svc: CallService = Depends(call_service)):
    """
    Outcome reported by a workflow webhook node after the call:
    phone plus `outcome` (outcome or classification tag) or `tool_called`.
    """
    fields = payload.report_fields()
    try:
        matched = svc.ingest_result_report(payload.phone, fields)
    except (MissingPhoneError, UnknownOutcomeError) as e:
        return JSONResponse(status_code=400, content={"ok": False, "error": str(e)})

    outcome = resolve_tag(payload.outcome) or resolve_tag(payload.tool_called)
    return JSONResponse(
        content={
            "ok": True,
            "matched": matched,
            "outcome": outcome,
            "rawOutcome": payload.outcome,
            "phone": payload.phone,
            "note": "run updated" if matched else "no matching run found (register with /api/v1/pre-call first)",
        },
        headers=NO_STORE,
    )
