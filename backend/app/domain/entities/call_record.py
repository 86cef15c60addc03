from __future__ import annotations

from typing import Literal, Optional, List
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

CallStatus = Literal["running", "completed", "failed", "canceled", "scheduled"]

CallOutcome = Literal[
    "escalated",
    "qualified",
    "price_recorded",
    "callback",
    "decision_maker",
    "voicemail",
    "closed",
    "in_progress",
    "unknown",
]

NegotiationResult = Literal["aligned", "negotiable", "out_of_market"]

TERMINAL_STATUSES = frozenset({"completed", "failed", "canceled"})
NEGOTIATION_RESULTS = frozenset({"aligned", "negotiable", "out_of_market"})


class CallRecord(BaseModel):
    """Canonical, progressively enriched view of one outbound call.

    Serialized with camelCase keys for the dashboard UI; constructed with
    either snake_case or camelCase names.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    phone: str = ""
    contact_name: Optional[str] = None
    company_name: Optional[str] = None

    status: CallStatus = "running"
    outcome: CallOutcome = "unknown"
    phase_reached: int = Field(default=0, ge=0)

    timestamp: str
    completed_at: Optional[str] = None
    duration: Optional[float] = Field(default=None, ge=0)

    tools_called: List[str] = Field(default_factory=list)

    negotiation_result: Optional[NegotiationResult] = None
    client_price: Optional[str] = None
    callback_date: Optional[str] = None
    callback_time: Optional[str] = None
    callback_notes: Optional[str] = None
    decision_maker_name: Optional[str] = None
    purchase_type: Optional[str] = None
    annual_consumption: Optional[str] = None
    close_reason: Optional[str] = None

    session_id: Optional[str] = None

    def public(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class PendingContact(BaseModel):
    """Contact data registered shortly before a call is triggered."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    phone: str = ""
    contact_name: Optional[str] = None
    company_name: Optional[str] = None
    reference_price: Optional[float] = None
    price_min: Optional[float] = None
    price_max: Optional[float] = None
    stored_at: float = 0.0
