"""In-memory indexer health with escalating back-off."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable

# Back-off applied after the n-th consecutive failure (index capped at the last entry).
ESCALATION_SECONDS: tuple[int, ...] = (
    0,
    5 * 60,
    15 * 60,
    30 * 60,
    60 * 60,
    3 * 60 * 60,
    6 * 60 * 60,
    12 * 60 * 60,
    24 * 60 * 60,
)


@dataclass
class IndexerStatus:
    escalation_level: int = 0
    disabled_till: float | None = None
    initial_failure: float | None = None
    most_recent_failure: float | None = None
    last_error: str | None = None


@dataclass
class IndexerStatusTracker:
    clock: Callable[[], float] = time.monotonic
    statuses: dict[str, IndexerStatus] = field(default_factory=dict)

    def record_failure(self, indexer: str, reason: str | None = None) -> IndexerStatus:
        now = self.clock()
        status = self.statuses.setdefault(indexer.lower(), IndexerStatus())
        status.escalation_level = min(status.escalation_level + 1, len(ESCALATION_SECONDS))
        if status.initial_failure is None:
            status.initial_failure = now
        status.most_recent_failure = now
        status.last_error = reason
        backoff = ESCALATION_SECONDS[status.escalation_level - 1]
        status.disabled_till = now + backoff if backoff else None
        return status

    def record_success(self, indexer: str) -> None:
        self.statuses.pop(indexer.lower(), None)

    def is_disabled(self, indexer: str) -> bool:
        status = self.statuses.get(indexer.lower())
        if status is None or status.disabled_till is None:
            return False
        return self.clock() < status.disabled_till

    def disabled_for(self, indexer: str) -> float:
        status = self.statuses.get(indexer.lower())
        if status is None or status.disabled_till is None:
            return 0.0
        return max(0.0, status.disabled_till - self.clock())

    def get(self, indexer: str) -> IndexerStatus | None:
        return self.statuses.get(indexer.lower())
