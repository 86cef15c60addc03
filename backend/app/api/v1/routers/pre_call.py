from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.api.v1.dependencies import call_service
from app.schemas.call import PreCallIn
from app.services.call_service import CallService

router = APIRouter(prefix="/api/v1/pre-call", tags=["pre-call"])

@router.post("")
async def register_pre_call(payload: PreCallIn, svc: CallService = Depends(call_service)):
    """Register contact data right before triggering a call; the call's first events pick it up."""
    stored = svc.register_pending_contact(payload.to_pending())
    return {
        "ok": True,
        "stored": {"phone": stored.phone, "contactName": stored.contact_name, "companyName": stored.company_name},
        "pendingCount": len(svc.pending),
    }

@router.get("")
async def list_pre_calls(svc: CallService = Depends(call_service)):
    pending = svc.pending.snapshot()
    return JSONResponse(
        content={
            "pendingCount": len(pending),
            "pending": [p.model_dump(by_alias=True) for p in pending],
        },
        headers={"Cache-Control": "no-store"},
    )
