"""
Context Analyzer — what situation is the user working in right now?

Time of day and energy come from a static clock heuristic; work type comes
from the activity monitor's adaptation suggestions when one is available.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from cadence.data.models import ActivitySnapshot, Context, Session, WorkRestModel

logger = logging.getLogger(__name__)

DEFAULT_WORK_TYPE = "deep_coding"


class ActivitySignal:
    """Collaborator interface: the current activity analysis, if any."""

    def current(self) -> Optional[ActivitySnapshot]:
        return None


class StaticActivitySignal(ActivitySignal):
    """Reports whatever snapshot was last pushed into it."""

    def __init__(self, snapshot: Optional[ActivitySnapshot] = None) -> None:
        self.snapshot = snapshot

    def current(self) -> Optional[ActivitySnapshot]:
        return self.snapshot


def time_of_day(hour: int) -> str:
    if 6 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    return "evening"


def energy_level(hour: int) -> str:
    if 9 <= hour <= 14:
        return "high"
    if 7 <= hour <= 17:
        return "medium"
    return "low"


def detect_work_type(activity: Optional[ActivitySnapshot]) -> str:
    if activity is None:
        return DEFAULT_WORK_TYPE
    suggestions = activity.adaptation_suggestions or []

    def mentions(text: str) -> bool:
        return any(text in s for s in suggestions)

    if activity.fatigue_signals >= 6 and mentions("debugging"):
        return "debugging"
    if mentions("creative"):
        return "creative"
    if mentions("task switching"):
        return "administrative"
    if mentions("Deep work"):
        return "deep_coding"
    return DEFAULT_WORK_TYPE


def infer_model_work_type(model: WorkRestModel) -> str:
    """The kind of work a model's own durations suit best."""
    if model.work_duration >= 60:
        return "deep_coding"
    if model.rest_duration >= 20:
        return "debugging"
    if model.rest_duration <= 5:
        return "administrative"
    return "creative"


class ContextAnalyzer:
    def __init__(
        self,
        clock: Callable[[], datetime] = datetime.now,
        activity: Optional[ActivitySignal] = None,
    ) -> None:
        self.clock = clock
        self.activity = activity or ActivitySignal()

    def classify(
        self,
        now: datetime,
        session: Optional[Session] = None,
        activity: Optional[ActivitySnapshot] = None,
    ) -> Context:
        hour = now.hour
        duration = (now - session.start_time).total_seconds() / 60.0 if session else 0.0
        return Context(
            time_of_day=time_of_day(hour),
            energy_level=energy_level(hour),
            work_type=detect_work_type(activity),
            session_duration=max(0.0, duration),
            day_of_week=now.weekday(),
        )

    def current(self, session: Optional[Session] = None) -> Context:
        """Classify the present moment using the injected clock and activity signal."""
        return self.classify(self.clock(), session, self.activity.current())
