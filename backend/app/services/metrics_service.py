from __future__ import annotations

from typing import Sequence

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.domain.entities.call_record import CallRecord


class NegotiationBreakdown(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    aligned: int = 0
    negotiable: int = 0
    out_of_market: int = 0


class DashboardStats(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total: int = 0
    escalated: int = 0
    qualified: int = 0
    callbacks: int = 0
    voicemails: int = 0
    closed: int = 0
    in_progress: int = 0
    conversion_rate: float = 0.0
    negotiation: NegotiationBreakdown = Field(default_factory=NegotiationBreakdown)


def compute_stats(records: Sequence[CallRecord]) -> DashboardStats:
    def count(*outcomes: str) -> int:
        return sum(1 for r in records if r.outcome in outcomes)

    total = len(records)
    escalated = count("escalated")
    conversion = round(escalated / total * 100, 1) if total else 0.0

    def neg(value: str) -> int:
        return sum(1 for r in records if r.negotiation_result == value)

    return DashboardStats(
        total=total,
        escalated=escalated,
        # an escalated lead was qualified first
        qualified=count("qualified", "escalated"),
        callbacks=count("callback"),
        voicemails=count("voicemail"),
        closed=count("closed"),
        in_progress=count("in_progress"),
        conversion_rate=conversion,
        negotiation=NegotiationBreakdown(
            aligned=neg("aligned"),
            negotiable=neg("negotiable"),
            out_of_market=neg("out_of_market"),
        ),
    )
