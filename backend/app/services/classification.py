from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Tuple

from app.core.errors import UnknownOutcomeError
from app.domain.entities.call_record import CallOutcome

# First match wins: a call may invoke several tools, the highest one decides.
TOOL_PRIORITY: Tuple[Tuple[str, CallOutcome], ...] = (
    ("escalate_to_commercial", "escalated"),
    ("record_price_expectation", "price_recorded"),
    ("record_qualified_lead", "qualified"),
    ("schedule_callback", "callback"),
    ("request_decision_maker_contact", "decision_maker"),
    ("report_voicemail", "voicemail"),
    ("close_polite", "closed"),
)
TOOL_TO_OUTCOME: Dict[str, CallOutcome] = dict(TOOL_PRIORITY)

# Tags emitted by the platform's "Analyze Call Result" summarization node
CLASSIFICATION_TAGS: Dict[str, CallOutcome] = {
    "escalated_to_commercial": "escalated",
    "qualified_lead": "qualified",
    "scheduled_callback": "callback",
    "decision_maker_contact_provided": "decision_maker",
    "voicemail": "voicemail",
    "closed_no_interest": "closed",
    "closed_out_of_market": "closed",
    "closed_other": "closed",
    "other": "closed",
}

TERMINAL_OUTCOMES = frozenset(TOOL_TO_OUTCOME.values())

# Single canonical table, shared by tool evidence and result reports
PHASE_FOR_OUTCOME: Dict[str, int] = {
    "escalated": 6,
    "price_recorded": 5,
    "qualified": 4,
    "callback": 3,
    "decision_maker": 2,
    "voicemail": 1,
    "closed": 2,
    "in_progress": 1,
    "unknown": 3,
}


@dataclass(frozen=True)
class Classification:
    outcome: CallOutcome
    phase_reached: int


def resolve_tag(tag: Any) -> Optional[CallOutcome]:
    """Map a direct outcome, classification tag or tool name to an outcome."""
    t = str(tag).strip() if tag is not None else ""
    if not t:
        return None
    if t in TERMINAL_OUTCOMES:
        return t  # type: ignore[return-value]
    return CLASSIFICATION_TAGS.get(t) or TOOL_TO_OUTCOME.get(t)

def outcome_from_tools(tool_names: Iterable[str]) -> CallOutcome:
    names = set(tool_names)
    for tool, outcome in TOOL_PRIORITY:
        if tool in names:
            return outcome
    return "unknown"

def classify(tool_names: Iterable[str], explicit_tag: Optional[str] = None, status: Optional[str] = None) -> Classification:
    if explicit_tag is not None and explicit_tag.strip():
        outcome = resolve_tag(explicit_tag)
        if outcome is None:
            raise UnknownOutcomeError(explicit_tag)
    else:
        outcome = outcome_from_tools(tool_names)

    if status == "running":
        # a call in flight has no terminal outcome yet; progress still shows
        phase = PHASE_FOR_OUTCOME[outcome] if outcome != "unknown" else PHASE_FOR_OUTCOME["in_progress"]
        return Classification(outcome="in_progress", phase_reached=phase)

    return Classification(outcome=outcome, phase_reached=PHASE_FOR_OUTCOME[outcome])
