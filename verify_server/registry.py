"""
In-memory registry of pending verifications (state -> record).
Owned by the app and injected into the service; lost on restart.
"""
import enum
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)


class Step(str, enum.Enum):
    AWAITING_IDENTITY = "awaiting_identity"
    AWAITING_CONSENT = "awaiting_consent"


@dataclass
class VerificationRecord:
    state: str
    subject_id: str
    subject_label: str
    created_at: float
    step: Step = Step.AWAITING_IDENTITY
    claims: dict[str, Any] | None = None

    def age(self, now: float) -> float:
        return now - self.created_at


class PendingRegistry:
    """
    Mapping of state token to VerificationRecord.

    A missing token is a normal outcome (forged, consumed or expired), so lookups return None
    instead of raising. All access goes through one lock: the sweeper and request handlers
    can interleave insert, lookup, delete and iteration.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._records: dict[str, VerificationRecord] = {}
        self._lock = threading.Lock()
        self.clock = clock

    def put(self, state: str, record: VerificationRecord) -> None:
        with self._lock:
            if state in self._records:
                logger.warning("Overwriting pending verification for subject %s", record.subject_id)
            self._records[state] = record

    def get(self, state: str) -> VerificationRecord | None:
        with self._lock:
            return self._records.get(state)

    def pop(self, state: str, step: Step | None = None) -> VerificationRecord | None:
        """
        Remove and return the record in one step. With step given, only a record currently at
        that step is removed; otherwise nothing changes and None is returned.
        """
        with self._lock:
            record = self._records.get(state)
            if record is None or (step is not None and record.step != step):
                return None
            del self._records[state]
            return record

    def delete(self, state: str) -> None:
        with self._lock:
            self._records.pop(state, None)

    def size(self) -> int:
        with self._lock:
            return len(self._records)

    def sweep(self, max_age: float) -> int:
        """Remove every record older than max_age seconds. Returns how many were removed."""
        now = self.clock()
        with self._lock:
            expired = [s for s, r in self._records.items() if r.age(now) > max_age]
            removed = [self._records.pop(s) for s in expired]
            remaining = len(self._records)
        for record in removed:
            logger.info("Expired pending verification for %s", record.subject_label)
        if removed:
            logger.debug("Sweep removed %d record(s), %d remaining", len(removed), remaining)
        return len(removed)
