"""Payload shape detection and field extraction for call platform runs.

Webhook deliveries and API responses arrive in several shapes:

* enveloped events (CloudEvents ``specversion`` + ``data.run_id``)
* legacy run objects, bare or nested under ``run`` / ``data``
* run details carrying ``sessions[].messages`` (v2)
* run details carrying ``events[]`` (v1)

``detect_shape`` picks the variant once; every extractor below is a pure
function over plain dicts and never raises on unexpected input.
"""
from __future__ import annotations

import datetime as dt
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from app.domain.entities.call_record import CallStatus


class PayloadShape(str, Enum):
    ENVELOPED_EVENT = "enveloped_event"
    LEGACY_OBJECT = "legacy_object"
    DETAIL_WITH_SESSIONS = "detail_with_sessions"
    DETAIL_WITH_EVENTS = "detail_with_events"
    UNKNOWN = "unknown"


@dataclass
class ToolInvocation:
    name: str
    params: Dict[str, Any] = field(default_factory=dict)
    response: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Envelope:
    """Correlation data pulled out of an inbound payload."""

    shape: PayloadShape
    run: Dict[str, Any]
    run_id: Optional[str] = None
    session_id: Optional[str] = None
    status: Optional[CallStatus] = None
    updated_at: Optional[str] = None
    keys: List[str] = field(default_factory=list)

    @property
    def has_correlation_id(self) -> bool:
        return bool(self.run_id)


@dataclass
class Extraction:
    tool_invocations: List[ToolInvocation] = field(default_factory=list)
    phone: str = ""
    duration: Optional[float] = None
    contact_name: Optional[str] = None
    company_name: Optional[str] = None
    status: Optional[CallStatus] = None
    timestamp: Optional[str] = None
    completed_at: Optional[str] = None

    @property
    def tool_names(self) -> List[str]:
        return [t.name for t in self.tool_invocations]


_STATUS_ALIASES: Dict[str, CallStatus] = {
    "running": "running",
    "in-progress": "running",
    "in_progress": "running",
    "started": "running",
    "completed": "completed",
    "complete": "completed",
    "ended": "completed",
    "failed": "failed",
    "error": "failed",
    "canceled": "canceled",
    "cancelled": "canceled",
    "scheduled": "scheduled",
    "queued": "scheduled",
    "pending": "scheduled",
}

CONTACT_SOURCES = ("metadata", "trigger_data", "input_data")
CONTACT_NAME_KEYS = ("contact_name", "nombre", "name")
COMPANY_NAME_KEYS = ("company_name", "empresa", "company")


def _dict(v: Any) -> Dict[str, Any]:
    return v if isinstance(v, dict) else {}

def _list(v: Any) -> List[Any]:
    return v if isinstance(v, list) else []

def _first(d: Dict[str, Any], *keys: str) -> Any:
    for k in keys:
        v = d.get(k)
        if v not in (None, "", {}, []):
            return v
    return None

def _text(v: Any) -> Optional[str]:
    if v is None:
        return None
    s = str(v).strip()
    return s or None

def _positive_number(v: Any) -> Optional[float]:
    if isinstance(v, bool):
        return None
    try:
        n = float(v)
    except (TypeError, ValueError):
        return None
    return n if n > 0 else None

def _decode_params(v: Any) -> Optional[Dict[str, Any]]:
    """Parameters may arrive as a mapping or as a JSON-encoded string."""
    if isinstance(v, dict):
        return v
    if isinstance(v, str):
        try:
            decoded = json.loads(v or "{}")
        except ValueError:
            return None
        return decoded if isinstance(decoded, dict) else None
    return {}

def parse_timestamp(value: Any) -> Optional[dt.datetime]:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = dt.datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed

def normalize_status(value: Any) -> Optional[CallStatus]:
    if isinstance(value, dict):
        value = value.get("current")
    if not isinstance(value, str):
        return None
    return _STATUS_ALIASES.get(value.strip().lower())


# Shape detection

def _is_envelope(payload: Dict[str, Any]) -> bool:
    if "specversion" in payload:
        return True
    data = payload.get("data")
    return isinstance(data, dict) and "run_id" in data

def _resolve_run(payload: Dict[str, Any]) -> Dict[str, Any]:
    for key in ("run", "data"):
        inner = payload.get(key)
        if isinstance(inner, dict):
            return inner
    return payload

def detect_shape(payload: Any) -> PayloadShape:
    if not isinstance(payload, dict):
        return PayloadShape.UNKNOWN
    if _is_envelope(payload):
        return PayloadShape.ENVELOPED_EVENT
    run = _resolve_run(payload)
    if isinstance(run.get("sessions"), list):
        return PayloadShape.DETAIL_WITH_SESSIONS
    if isinstance(run.get("events"), list):
        return PayloadShape.DETAIL_WITH_EVENTS
    if run.get("id"):
        return PayloadShape.LEGACY_OBJECT
    return PayloadShape.UNKNOWN

def _unwrap_enveloped(payload: Dict[str, Any]) -> Envelope:
    data = _dict(payload.get("data"))
    status = data.get("status")
    st = _dict(status)
    return Envelope(
        shape=PayloadShape.ENVELOPED_EVENT,
        run=data,
        run_id=_text(data.get("run_id")),
        session_id=_text(data.get("session_id")),
        status=normalize_status(status),
        updated_at=_text(st.get("updated_at")),
        keys=list(data.keys()) or list(payload.keys()),
    )

def _unwrap_run_object(payload: Dict[str, Any], shape: PayloadShape) -> Envelope:
    run = _resolve_run(payload)
    return Envelope(
        shape=shape,
        run=run,
        run_id=_text(run.get("id")),
        session_id=_text(run.get("session_id")),
        status=normalize_status(run.get("status")),
        updated_at=_text(run.get("updated_at")),
        keys=list(run.keys()),
    )

def unwrap(payload: Any) -> Envelope:
    """Dispatch on structural markers and pull out the correlation data."""
    shape = detect_shape(payload)
    if shape is PayloadShape.ENVELOPED_EVENT:
        return _unwrap_enveloped(payload)
    if shape is PayloadShape.UNKNOWN:
        keys = list(payload.keys()) if isinstance(payload, dict) else []
        run = _resolve_run(payload) if isinstance(payload, dict) else {}
        return Envelope(shape=shape, run=run, keys=keys)
    return _unwrap_run_object(payload, shape)


# Tool invocations

def tools_from_sessions(run: Dict[str, Any]) -> List[ToolInvocation]:
    found: List[ToolInvocation] = []
    for session in _list(run.get("sessions")):
        session = _dict(session)
        messages = _list(session.get("messages")) or _list(session.get("transcript"))
        for msg in messages:
            if not isinstance(msg, dict):
                continue
            if msg.get("type") != "tool_call" and msg.get("role") != "tool":
                continue
            params = _decode_params(_first(msg, "input_parameters", "parameters", "arguments")) or {}
            found.append(ToolInvocation(
                name=str(_first(msg, "tool_name", "function", "name") or "unknown"),
                params=params,
                response=_dict(_first(msg, "response", "result")),
            ))
    return found

def _tools_from_ai_event(event: Dict[str, Any]) -> List[ToolInvocation]:
    resp = _dict(_dict(event.get("output")).get("response"))
    found: List[ToolInvocation] = []

    name = _first(resp, "tool_name", "function_name")
    if name:
        params = _decode_params(_first(resp, "parameters", "input_parameters")) or {}
        found.append(ToolInvocation(name=str(name), params=params))

    fc = _dict(resp.get("function_call"))
    if fc:
        # arguments is a JSON string; an undecodable one drops the invocation
        params = _decode_params(fc.get("arguments"))
        if params is not None:
            found.append(ToolInvocation(name=str(fc.get("name") or "unknown"), params=params))
    return found

def tools_from_events(run: Dict[str, Any]) -> List[ToolInvocation]:
    found: List[ToolInvocation] = []
    for event in _list(run.get("events")):
        if not isinstance(event, dict):
            continue
        if event.get("integration_name") == "AI":
            found.extend(_tools_from_ai_event(event))
        if event.get("type") == "tool_call":
            params = _decode_params(_first(event, "input_parameters", "parameters")) or {}
            found.append(ToolInvocation(
                name=str(_first(event, "tool_name", "name") or "unknown"),
                params=params,
                response=_dict(event.get("response")),
            ))
    return found


# Scalar fields

def extract_phone(run: Dict[str, Any]) -> str:
    for session in _list(run.get("sessions")):
        session = _dict(session)
        to = _text(_dict(session.get("phone_numbers")).get("to"))
        if to:
            return to
        to = _text(session.get("to_number"))
        if to:
            return to
    return _text(_dict(run.get("metadata")).get("phone_number")) or ""

def extract_duration(run: Dict[str, Any]) -> Optional[float]:
    for session in _list(run.get("sessions")):
        session = _dict(session)
        d = _positive_number(session.get("duration"))
        if d is None:
            d = _positive_number(_dict(session.get("output")).get("duration"))
        if d is not None:
            return d
    for event in _list(run.get("events")):
        event = _dict(event)
        if event.get("type") == "session":
            d = _positive_number(_dict(event.get("output")).get("duration"))
            if d is not None:
                return d
    start = parse_timestamp(run.get("timestamp"))
    end = parse_timestamp(run.get("completed_at"))
    if start and end and end > start:
        return float(round((end - start).total_seconds()))
    return None

def extract_contact(run: Dict[str, Any]) -> tuple[Optional[str], Optional[str]]:
    contact: Optional[str] = None
    company: Optional[str] = None
    for source in CONTACT_SOURCES:
        data = _dict(run.get(source))
        if contact is None:
            contact = _text(_first(data, *CONTACT_NAME_KEYS))
        if company is None:
            company = _text(_first(data, *COMPANY_NAME_KEYS))
    return contact, company

def extract(run: Any) -> Extraction:
    """Best-effort extraction from a run/detail object of any known shape."""
    run = _dict(run)
    contact, company = extract_contact(run)
    return Extraction(
        tool_invocations=tools_from_sessions(run) + tools_from_events(run),
        phone=extract_phone(run),
        duration=extract_duration(run),
        contact_name=contact,
        company_name=company,
        status=normalize_status(run.get("status")),
        timestamp=_text(_first(run, "timestamp", "created_at", "started_at")),
        completed_at=_text(run.get("completed_at")),
    )
