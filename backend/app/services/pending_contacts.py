from __future__ import annotations

import time
from collections import deque
from typing import Callable, Deque, List, Optional

import structlog

from app.domain.entities.call_record import PendingContact

logger = structlog.get_logger("pending-contacts")

DEFAULT_TTL_SECS = 120.0
DEFAULT_CAPACITY = 20


class PendingContactRegistry:
    """Contacts registered just before a call is triggered.

    The inbound call event often carries no phone number yet, so an arriving
    call claims the most recently registered contact within ``ttl`` seconds
    instead of matching by phone. Each entry is claimed at most once. The
    registry is a ring: past ``capacity`` the oldest entries drop off.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY, clock: Callable[[], float] = time.time):
        self._entries: Deque[PendingContact] = deque(maxlen=max(1, capacity))
        self._clock = clock

    def __len__(self) -> int:
        return len(self._entries)

    def register(self, contact: PendingContact) -> PendingContact:
        stored = contact.model_copy(update={"stored_at": self._clock()})
        self._entries.append(stored)
        logger.info("pending_contact.registered", phone=stored.phone, pending=len(self._entries))
        return stored

    def claim_recent(self, ttl: float = DEFAULT_TTL_SECS) -> Optional[PendingContact]:
        now = self._clock()
        best: Optional[PendingContact] = None
        for entry in self._entries:
            if now - entry.stored_at > ttl:
                continue
            if best is None or entry.stored_at >= best.stored_at:
                best = entry
        if best is None:
            return None
        self._entries.remove(best)
        logger.info("pending_contact.claimed", phone=best.phone, age_secs=round(now - best.stored_at, 3))
        return best

    def snapshot(self) -> List[PendingContact]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()
