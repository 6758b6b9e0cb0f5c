"""
Performance Recorder — the history every recommendation is learned from.

An outcome is appended whenever a session (or, for open-ended models, a
work+rest segment) concludes. History older than 90 days is pruned on every
append and only the most recent 200 records are persisted.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from cadence.data import storage as keys
from cadence.data.models import Context, PerformanceMetrics, PerformanceRecord
from cadence.data.storage import Storage
from cadence.services.events import SessionEvents

logger = logging.getLogger(__name__)

RETENTION = timedelta(days=90)
MAX_PERSISTED = 200
DEFAULT_SATISFACTION = 3.5


def break_effectiveness(duration_minutes: float, satisfaction: Optional[float]) -> float:
    """Short sessions rated highly mean the breaks are doing their job."""
    if satisfaction is None:
        return 0.5
    normalized_duration = min(duration_minutes / 120.0, 1.0)
    satisfaction_effect = (satisfaction - 1) / 4
    return satisfaction_effect * 0.6 + (1 - normalized_duration) * 0.4


class PerformanceRecorder:
    def __init__(
        self,
        storage: Storage,
        context_provider: Callable[[], Context],
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.storage = storage
        self.context_provider = context_provider
        self.clock = clock
        self.history: List[PerformanceRecord] = self._load()

    # ── Public API ──────────────────────────────────────────────────────────

    def connect(self, events: SessionEvents) -> None:
        """Record outcomes announced by the session clock."""
        events.session_completed.connect(self._on_outcome)
        events.segment_completed.connect(self._on_outcome)

    def record(
        self,
        model_id: str,
        duration_minutes: float,
        completion_rate: float,
        satisfaction: Optional[float] = None,
        context: Optional[Context] = None,
    ) -> PerformanceRecord:
        now = self.clock()
        record = PerformanceRecord(
            model_id=model_id,
            context=context or self.context_provider(),
            performance=PerformanceMetrics(
                completion_rate=completion_rate,
                satisfaction_score=satisfaction if satisfaction is not None else DEFAULT_SATISFACTION,
                effective_work_time=duration_minutes * completion_rate,
                break_effectiveness=break_effectiveness(duration_minutes, satisfaction),
            ),
            timestamp=now,
        )
        self.history.append(record)
        self.prune(now)
        self.save()
        logger.info("Recorded performance for %s: %.0f%% completion (%s/%s)",
                    model_id, completion_rate * 100,
                    record.context.time_of_day, record.context.energy_level)
        return record

    def prune(self, now: Optional[datetime] = None) -> int:
        """Drop records older than the retention window. Returns how many went."""
        cutoff = (now or self.clock()) - RETENTION
        before = len(self.history)
        self.history = [r for r in self.history if r.timestamp > cutoff]
        return before - len(self.history)

    def recent(self, max_age: timedelta) -> List[PerformanceRecord]:
        cutoff = self.clock() - max_age
        return [r for r in self.history if r.timestamp > cutoff]

    def save(self) -> None:
        self.storage.set(
            keys.PERFORMANCE_HISTORY,
            [r.to_dict() for r in self.history[-MAX_PERSISTED:]],
        )

    # ── Internal ────────────────────────────────────────────────────────────

    def _on_outcome(self, model_id: str, elapsed_minutes: float, completion_rate: float) -> None:
        self.record(model_id, elapsed_minutes, completion_rate)

    def _load(self) -> List[PerformanceRecord]:
        raw = self.storage.get(keys.PERFORMANCE_HISTORY, [])
        if not isinstance(raw, list):
            logger.warning("Performance history has unexpected shape; starting empty.")
            return []
        history: List[PerformanceRecord] = []
        for item in raw:
            try:
                history.append(PerformanceRecord.from_dict(item))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping corrupt performance record: %s", exc)
        return history
