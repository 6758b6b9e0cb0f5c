"""
Data models for Cadence.

Plain dataclasses shared by every layer: the work/rest catalog entries, the
live session, performance history records and the federated learning
payloads. Records that are persisted know how to turn themselves into JSON
friendly dicts and back.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple


# ── Catalog ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class WorkRestModel:
    """A named work/rest configuration (e.g. Classic Pomodoro)."""
    id: str
    name: str
    work_duration: float           # minutes
    rest_duration: float           # minutes
    cycles: Optional[int] = None   # cycles before the long rest
    long_rest_duration: Optional[float] = None
    based_on: str = "custom"       # 'pomodoro', 'who', 'custom'
    description: str = ""


# ── Session ────────────────────────────────────────────────────────────────

class SessionPhase:
    """Phases of the session clock."""
    IDLE = "idle"
    WORKING = "working"
    RESTING_SHORT = "resting_short"
    RESTING_LONG = "resting_long"

    RESTING = (RESTING_SHORT, RESTING_LONG)


@dataclass
class Session:
    """The single live run of a WorkRestModel."""
    model: WorkRestModel
    start_time: datetime
    end_time: datetime
    phase_start_time: datetime
    current_cycle: int = 1
    phase: str = SessionPhase.WORKING
    total_cycles: int = 0
    awaiting_confirmation: bool = False

    @property
    def is_working(self) -> bool:
        return self.phase == SessionPhase.WORKING

    @property
    def is_resting(self) -> bool:
        return self.phase in SessionPhase.RESTING


# ── Context ────────────────────────────────────────────────────────────────

TIMES_OF_DAY = ("morning", "afternoon", "evening")
ENERGY_LEVELS = ("high", "medium", "low")
WORK_TYPES = ("deep_coding", "debugging", "creative", "administrative", "review")


@dataclass
class Context:
    """Situational snapshot used to score models."""
    time_of_day: str
    energy_level: str
    work_type: str
    session_duration: float = 0.0
    day_of_week: int = 0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Context":
        return cls(
            time_of_day=data["time_of_day"],
            energy_level=data["energy_level"],
            work_type=data["work_type"],
            session_duration=float(data.get("session_duration", 0.0)),
            day_of_week=int(data.get("day_of_week", 0)),
        )


@dataclass
class ActivitySnapshot:
    """What the activity monitor currently reports."""
    fatigue_signals: float = 0.0
    adaptation_suggestions: List[str] = field(default_factory=list)


# ── Performance history ────────────────────────────────────────────────────

@dataclass
class PerformanceMetrics:
    completion_rate: float
    satisfaction_score: float
    effective_work_time: float
    break_effectiveness: float


@dataclass
class PerformanceRecord:
    """One outcome of a session or a finished work/rest segment."""
    model_id: str
    context: Context
    performance: PerformanceMetrics
    timestamp: datetime

    def to_dict(self) -> dict:
        return {
            "model_id": self.model_id,
            "context": self.context.to_dict(),
            "performance": asdict(self.performance),
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PerformanceRecord":
        perf = data["performance"]
        return cls(
            model_id=data["model_id"],
            context=Context.from_dict(data["context"]),
            performance=PerformanceMetrics(
                completion_rate=float(perf["completion_rate"]),
                satisfaction_score=float(perf["satisfaction_score"]),
                effective_work_time=float(perf["effective_work_time"]),
                break_effectiveness=float(perf["break_effectiveness"]),
            ),
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )


# ── Recommendations and switching ──────────────────────────────────────────

@dataclass
class AlternativeModel:
    model: WorkRestModel
    confidence: float
    suitability: str


@dataclass
class Recommendation:
    recommended_model: WorkRestModel
    confidence: float
    reason: str
    expected_improvement: str
    alternative_models: List[AlternativeModel] = field(default_factory=list)
    is_fallback: bool = False


@dataclass
class SwitchingDecision:
    should_switch: bool
    reason: str = ""
    target_model: Optional[WorkRestModel] = None
    confidence: float = 0.0
    expected_benefit: float = 0.0   # percentage points


# ── Federated learning ─────────────────────────────────────────────────────

class ModelScenario:
    MORNING_FOCUS = "morning_focus"
    AFTERNOON_SUSTAINED = "afternoon_sustained"
    EVENING_MAINTENANCE = "evening_maintenance"
    CREATIVE_SESSION = "creative_session"
    DEBUGGING_SESSION = "debugging_session"
    ADMINISTRATIVE = "administrative"
    LEARNING_SESSION = "learning_session"


@dataclass
class LocalModelSummary:
    """A personal model and how well it has performed for this user."""
    model_id: str
    work_duration: float
    average_completion_rate: float
    average_satisfaction: float


@dataclass
class ModelUsageRecord:
    model_id: str
    start_time: datetime
    end_time: datetime
    completion_rate: float
    user_rating: Optional[float] = None
    interruptions: int = 0
    override_count: int = 0


@dataclass
class StatisticalSummary:
    average_work_duration: float
    average_completion_rate: float
    average_satisfaction: float
    sample_count: int
    peak_productivity_hours: List[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "StatisticalSummary":
        return cls(
            average_work_duration=float(data["average_work_duration"]),
            average_completion_rate=float(data["average_completion_rate"]),
            average_satisfaction=float(data["average_satisfaction"]),
            sample_count=int(data["sample_count"]),
            peak_productivity_hours=list(data.get("peak_productivity_hours", [])),
        )


@dataclass
class PrivacyConfig:
    epsilon: float = 0.1        # privacy budget, lower = more private
    sensitivity: float = 1.0
    mechanism: str = "laplace"
    noise_scale: float = 0.5

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "PrivacyConfig":
        return cls(**{k: data[k] for k in ("epsilon", "sensitivity", "mechanism", "noise_scale") if k in data})


@dataclass
class VerificationRange:
    min_validity: float = 0.8
    max_validity: float = 1.0
    confidence: float = 0.95
    attributes: Tuple[str, ...] = ("workDurations", "completionRates", "satisfactionScores")


@dataclass
class FederatedContribution:
    """A privatized, committed and encrypted summary waiting for a batch."""
    proof: str
    commitment: str
    timestamp: datetime
    range: VerificationRange = field(default_factory=VerificationRange)

    def to_dict(self) -> dict:
        return {
            "proof": self.proof,
            "commitment": self.commitment,
            "timestamp": self.timestamp.isoformat(),
            "range": {**asdict(self.range), "attributes": list(self.range.attributes)},
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FederatedContribution":
        rng = data.get("range") or {}
        return cls(
            proof=data["proof"],
            commitment=data["commitment"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            range=VerificationRange(
                min_validity=rng.get("min_validity", 0.8),
                max_validity=rng.get("max_validity", 1.0),
                confidence=rng.get("confidence", 0.95),
                attributes=tuple(rng.get("attributes", VerificationRange.attributes)),
            ),
        )


@dataclass
class AssessmentFingerprint:
    work_style: str
    break_style: str
    adaptability: float
    cluster_size: int
    success_rate: float
    recommended_scenarios: List[str] = field(default_factory=list)


@dataclass
class PerformanceAggregate:
    scenario: str
    average_completion_rate: float
    average_satisfaction: float
    sample_size: int
    confidence_interval: Tuple[float, float]


@dataclass
class FederatedInsight:
    assessment_fingerprints: List[AssessmentFingerprint]
    performance_aggregates: List[PerformanceAggregate]

    def to_dict(self) -> dict:
        return {
            "assessment_fingerprints": [asdict(f) for f in self.assessment_fingerprints],
            "performance_aggregates": [
                {**asdict(a), "confidence_interval": list(a.confidence_interval)}
                for a in self.performance_aggregates
            ],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FederatedInsight":
        return cls(
            assessment_fingerprints=[
                AssessmentFingerprint(**f) for f in data.get("assessment_fingerprints", [])
            ],
            performance_aggregates=[
                PerformanceAggregate(
                    scenario=a["scenario"],
                    average_completion_rate=float(a["average_completion_rate"]),
                    average_satisfaction=float(a["average_satisfaction"]),
                    sample_size=int(a["sample_size"]),
                    confidence_interval=tuple(a["confidence_interval"]),
                )
                for a in data.get("performance_aggregates", [])
            ],
        )


@dataclass
class GlobalModel:
    """The community baseline, versioned on every accepted batch."""
    version: str = "1.0.0"
    base_performance: float = 0.7
    contributor_count: int = 0
    insights: List[FederatedInsight] = field(default_factory=list)
    last_updated: Optional[datetime] = None
    verification_proof: str = ""

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "base_performance": self.base_performance,
            "contributor_count": self.contributor_count,
            "insights": [i.to_dict() for i in self.insights],
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "verification_proof": self.verification_proof,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "GlobalModel":
        updated = data.get("last_updated")
        return cls(
            version=data.get("version", "1.0.0"),
            base_performance=float(data.get("base_performance", 0.7)),
            contributor_count=int(data.get("contributor_count", 0)),
            insights=[FederatedInsight.from_dict(i) for i in data.get("insights", [])],
            last_updated=datetime.fromisoformat(updated) if updated else None,
            verification_proof=data.get("verification_proof", ""),
        )


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   Defines the shape of every object that moves between the clock, the
#   recommendation engine and the federated aggregator.
#
# Key classes:
#   - WorkRestModel: frozen, so a catalog entry can never be edited in place.
#   - Session: the live state of the clock (phase, cycle, absolute deadline).
#   - PerformanceRecord: one outcome + the context it happened in. This is
#     the only history the recommendation engine learns from.
#   - FederatedContribution / GlobalModel: the payloads of the privacy
#     pipeline, serialisable to JSON for the key/value store.
#
# Data flow:
#   SessionClock mutates Session → emits events → PerformanceRecorder builds
#   PerformanceRecord → Storage persists to_dict() → from_dict() on reload.
