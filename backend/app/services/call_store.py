from __future__ import annotations

import datetime as dt
import itertools
import re
from typing import Any, Dict, List, Mapping, Optional

import structlog

from app.domain.entities.call_record import CallRecord, TERMINAL_STATUSES
from app.services.classification import TERMINAL_OUTCOMES
from app.services.extraction import parse_timestamp

logger = structlog.get_logger("call-store")

# Once set, these only ever fill in; an empty incoming value never erases them.
ENRICH_ONLY_FIELDS = ("phone", "contact_name", "company_name")

_PHONE_NOISE = re.compile(r"[\s\-().]")
_EPOCH = dt.datetime.min.replace(tzinfo=dt.timezone.utc)


def normalize_phone(phone: Optional[str]) -> str:
    return _PHONE_NOISE.sub("", phone or "")

def _sort_key(record: CallRecord) -> dt.datetime:
    return parse_timestamp(record.timestamp) or _EPOCH

def merge_records(existing: CallRecord, incoming: CallRecord) -> CallRecord:
    """Merge ``incoming`` over ``existing`` without regressing known data."""
    merged: Dict[str, Any] = existing.model_dump()
    for name, value in incoming.model_dump().items():
        if value is None:
            continue
        if name in ENRICH_ONLY_FIELDS and not value:
            continue
        if name == "tools_called" and not value:
            continue
        merged[name] = value

    if existing.status in TERMINAL_STATUSES and incoming.status not in TERMINAL_STATUSES:
        merged["status"] = existing.status
    keep_outcome = (
        (existing.outcome in TERMINAL_OUTCOMES and incoming.outcome not in TERMINAL_OUTCOMES)
        # a finished call cannot be back in progress
        or (merged["status"] in TERMINAL_STATUSES and incoming.outcome == "in_progress")
    )
    if keep_outcome:
        merged["outcome"] = existing.outcome
        merged["phase_reached"] = existing.phase_reached
    return CallRecord.model_validate(merged)


class CallRecordStore:
    """In-memory call records keyed by call id.

    No method awaits, so each call runs to completion without interleaving
    with other requests on the event loop.
    """

    def __init__(self, max_records: int = 0):
        self._records: Dict[str, CallRecord] = {}
        self._touched: Dict[str, int] = {}
        self._seq = itertools.count(1)
        self.max_records = max_records
        # ids that already consumed a pending contact
        self._correlated: set[str] = set()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records

    def get(self, record_id: str) -> Optional[CallRecord]:
        return self._records.get(record_id)

    def upsert(self, record: CallRecord) -> CallRecord:
        existing = self._records.get(record.id)
        stored = merge_records(existing, record) if existing else record
        self._records[stored.id] = stored
        self._touched[stored.id] = next(self._seq)
        self._evict()
        return stored

    def get_all(self) -> List[CallRecord]:
        return sorted(self._records.values(), key=_sort_key, reverse=True)

    def update_by_phone(self, phone: str, fields: Mapping[str, Any]) -> bool:
        """Apply ``fields`` to the most recently touched record with ``phone``."""
        wanted = normalize_phone(phone)
        if not wanted:
            return False
        matches = [r for r in self._records.values() if normalize_phone(r.phone) == wanted]
        if not matches:
            logger.info("call_store.phone_miss", phone=phone)
            return False
        target = max(matches, key=lambda r: self._touched.get(r.id, 0))
        patch = {k: v for k, v in fields.items() if v is not None}
        updated = CallRecord.model_validate({**target.model_dump(), **patch})
        self._records[updated.id] = updated
        self._touched[updated.id] = next(self._seq)
        logger.info("call_store.phone_update", phone=phone, run_id=updated.id, fields=sorted(patch))
        return True

    def mark_correlated(self, record_id: str) -> None:
        self._correlated.add(record_id)

    def was_correlated(self, record_id: str) -> bool:
        return record_id in self._correlated

    def clear(self) -> None:
        self._records.clear()
        self._touched.clear()
        self._correlated.clear()

    def _evict(self) -> None:
        if self.max_records <= 0:
            return
        while len(self._records) > self.max_records:
            oldest = min(self._records.values(), key=_sort_key)
            self._records.pop(oldest.id, None)
            self._touched.pop(oldest.id, None)
            self._correlated.discard(oldest.id)
            logger.info("call_store.evicted", run_id=oldest.id)
