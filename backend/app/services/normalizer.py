from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Optional

from app.domain.entities.call_record import CallRecord, NEGOTIATION_RESULTS
from app.services.classification import Classification
from app.services.extraction import Extraction, ToolInvocation


def utcnow_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat().replace("+00:00", "Z")

def _find(invocations: List[ToolInvocation], name: str) -> Optional[ToolInvocation]:
    for inv in invocations:
        if inv.name == name:
            return inv
    return None

def _s(v: Any) -> Optional[str]:
    if v is None or isinstance(v, (dict, list)):
        return None
    s = str(v).strip()
    return s or None

def outcome_fields(invocations: List[ToolInvocation]) -> Dict[str, Any]:
    """Outcome-specific attributes taken from each outcome's defining tool call."""
    out: Dict[str, Any] = {}

    price = _find(invocations, "record_price_expectation")
    if price:
        neg = price.params.get("negotiation_result") or price.response.get("negotiation_result")
        if neg in NEGOTIATION_RESULTS:
            out["negotiation_result"] = neg
        out["client_price"] = _s(price.params.get("client_price"))
        out["purchase_type"] = _s(price.params.get("purchase_type"))
        out["annual_consumption"] = _s(price.params.get("annual_consumption"))

    cb = _find(invocations, "schedule_callback")
    if cb:
        out["callback_date"] = _s(cb.params.get("date"))
        out["callback_time"] = _s(cb.params.get("time"))
        out["callback_notes"] = _s(cb.params.get("notes"))

    dm = _find(invocations, "request_decision_maker_contact")
    if dm:
        out["decision_maker_name"] = _s(dm.params.get("name"))

    close = _find(invocations, "close_polite")
    if close:
        out["close_reason"] = _s(close.params.get("reason") or close.params.get("message"))

    return {k: v for k, v in out.items() if v is not None}

def normalize(run: Dict[str, Any], extracted: Extraction, classified: Classification,
              *, run_id: Optional[str] = None, session_id: Optional[str] = None) -> CallRecord:
    """Compose extractor and classifier output into a CallRecord."""
    record_id = run_id or _s(run.get("id"))
    if not record_id:
        raise ValueError("run has no id")
    return CallRecord(
        id=record_id,
        phone=extracted.phone,
        contact_name=extracted.contact_name,
        company_name=extracted.company_name,
        status=extracted.status or "running",
        outcome=classified.outcome,
        phase_reached=classified.phase_reached,
        duration=extracted.duration,
        timestamp=extracted.timestamp or utcnow_iso(),
        completed_at=extracted.completed_at,
        tools_called=extracted.tool_names,
        session_id=session_id or _s(run.get("session_id")),
        **outcome_fields(extracted.tool_invocations),
    )
