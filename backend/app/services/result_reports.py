"""Outcome reports delivered by the platform's workflow webhook nodes.

The reporting channel only knows the callee's phone number, so updates are
matched to the most recent record with that phone.

``outcome`` may hold a direct outcome (``escalated``), a classification tag
from the "Analyze Call Result" node (``closed_no_interest``); ``tool_called``
may hold the tool name of a per-branch webhook (``schedule_callback``).
"""
from __future__ import annotations

from typing import Any, Dict, Mapping

from app.core.errors import MissingPhoneError, UnknownOutcomeError
from app.domain.entities.call_record import NEGOTIATION_RESULTS
from app.services.call_store import CallRecordStore
from app.services.classification import PHASE_FOR_OUTCOME, TERMINAL_OUTCOMES, resolve_tag

_TEXT_FIELDS = (
    "client_price",
    "callback_date",
    "callback_time",
    "callback_notes",
    "decision_maker_name",
    "close_reason",
)


def _as_number(v: Any) -> float | None:
    if v is None or isinstance(v, bool) or v == "":
        return None
    try:
        n = float(v)
    except (TypeError, ValueError):
        return None
    return n if n >= 0 else None

def build_result_update(fields: Mapping[str, Any]) -> Dict[str, Any]:
    raw_outcome = fields.get("outcome")
    raw = str(raw_outcome).strip() if raw_outcome is not None else ""

    outcome = resolve_tag(raw) if raw else None
    if outcome is None:
        tool = str(fields.get("tool_called") or "").strip()
        outcome = resolve_tag(tool) if tool else None
    if outcome is None or outcome not in TERMINAL_OUTCOMES:
        raise UnknownOutcomeError(raw or None)

    update: Dict[str, Any] = {
        "outcome": outcome,
        "status": "completed",
        "phase_reached": PHASE_FOR_OUTCOME[outcome],
        "tools_called": [raw or outcome],
    }
    for name in _TEXT_FIELDS:
        value = fields.get(name)
        if value is not None and str(value).strip():
            update[name] = str(value).strip()

    neg = fields.get("negotiation_result")
    if neg in NEGOTIATION_RESULTS:
        update["negotiation_result"] = neg

    duration = _as_number(fields.get("duration"))
    if duration is not None:
        update["duration"] = duration
    return update

def apply_result_report(store: CallRecordStore, phone: str | None, fields: Mapping[str, Any]) -> bool:
    """Validate a report and apply it by phone. Returns whether a record matched."""
    if not (phone or "").strip():
        raise MissingPhoneError()
    return store.update_by_phone(phone.strip(), build_result_update(fields))
