"""
Federated Aggregator — community learning without sharing raw history.

Pipeline per submission:
    summarize → privatize (Laplace) → commit (HMAC) → seal (Fernet) → enqueue

Once five contributions are queued a batch runs:
    verify (fresh + well-formed proof) → fewer than 3 valid? keep queue
    → open each (drop the ones that fail) → average → FederatedInsight
    → fold into GlobalModel (patch version bump) → persist → clear queue
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional

import numpy as np

from cadence.data import storage as keys
from cadence.data.catalog import Catalog
from cadence.data.models import (
    AssessmentFingerprint, FederatedContribution, FederatedInsight, GlobalModel,
    LocalModelSummary, ModelScenario, ModelUsageRecord, PerformanceAggregate,
    PerformanceRecord, PrivacyConfig, StatisticalSummary,
)
from cadence.data.storage import Storage
from cadence.errors import DecryptionError
from cadence.ml.privacy import CommitmentScheme, LaplaceMechanism, clamp

logger = logging.getLogger(__name__)

BATCH_SIZE = 5
MIN_VALID_CONTRIBUTIONS = 3
FRESHNESS = timedelta(hours=24)
CLOCK_SKEW = timedelta(minutes=5)
INSIGHT_WINDOW = 10
MAX_QUEUE = 50
DEFAULT_BASE_PERFORMANCE = 0.7
PEAK_PRODUCTIVITY_HOURS = [9, 10, 11, 14, 15]


# ── Local data → contribution inputs ───────────────────────────────────────

def summaries_from_history(
    history: Iterable[PerformanceRecord], catalog: Catalog
) -> List[LocalModelSummary]:
    """One summary per catalog model that has recorded outcomes."""
    grouped: Dict[str, List[PerformanceRecord]] = defaultdict(list)
    for record in history:
        grouped[record.model_id].append(record)

    summaries: List[LocalModelSummary] = []
    for model_id, records in grouped.items():
        model = catalog.by_id(model_id)
        if model is None:
            continue
        summaries.append(LocalModelSummary(
            model_id=model_id,
            work_duration=model.work_duration,
            average_completion_rate=float(np.mean([r.performance.completion_rate for r in records])),
            average_satisfaction=float(np.mean([r.performance.satisfaction_score for r in records])),
        ))
    return summaries


def usage_from_history(history: Iterable[PerformanceRecord]) -> List[ModelUsageRecord]:
    usage = []
    for r in history:
        rate = r.performance.completion_rate
        minutes = r.performance.effective_work_time / rate if rate > 0 else 0.0
        usage.append(ModelUsageRecord(
            model_id=r.model_id,
            start_time=r.timestamp - timedelta(minutes=minutes),
            end_time=r.timestamp,
            completion_rate=rate,
            user_rating=r.performance.satisfaction_score,
        ))
    return usage


def validate_privacy_config(config: PrivacyConfig) -> None:
    if not isinstance(config.epsilon, (int, float)) or config.epsilon <= 0:
        raise ValueError(f"epsilon must be positive, got {config.epsilon!r}")


def bump_patch(version: str) -> str:
    """'1.2.3' → '1.2.4'. An unreadable version restarts the line at 1.0.1."""
    try:
        major, minor, patch = (int(p) for p in (version.split(".") + ["0", "0"])[:3])
    except (AttributeError, ValueError):
        logger.warning("Unreadable global model version %r; restarting at 1.0.0", version)
        major, minor, patch = 1, 0, 0
    return f"{major}.{minor}.{patch + 1}"


class FederatedAggregator:
    def __init__(
        self,
        storage: Storage,
        clock: Callable[[], datetime] = datetime.now,
        rng: Optional[np.random.Generator] = None,
        commitments: Optional[CommitmentScheme] = None,
    ) -> None:
        self.storage = storage
        self.clock = clock
        self._privacy_config = PrivacyConfig()
        self._rng = rng
        self.commitments = commitments or CommitmentScheme()
        self.global_model: Optional[GlobalModel] = None
        self.queue: List[FederatedContribution] = []

        self._load()
        self.mechanism = LaplaceMechanism(self._privacy_config, rng)
        if self.global_model is None:
            self.global_model = GlobalModel(
                version="1.0.0",
                base_performance=DEFAULT_BASE_PERFORMANCE,
                last_updated=self.clock(),
            )
            self.global_model.verification_proof = self._model_proof()

    # ── Submission ──────────────────────────────────────────────────────────

    def submit(
        self,
        local_models: List[LocalModelSummary],
        usage_history: List[ModelUsageRecord],
        consent: bool = False,
    ) -> bool:
        """Queue a privatized contribution. False without consent or data."""
        if not consent:
            logger.info("Federated contribution skipped - no privacy consent.")
            return False
        if not local_models:
            logger.info("Federated contribution skipped - no local models to summarize.")
            return False

        summary = self.summarize(local_models, usage_history)
        privatized = self.mechanism.privatize(summary)
        proof, sealed = self.commitments.commit(privatized.to_dict())
        self.queue.append(FederatedContribution(proof=proof, commitment=sealed, timestamp=self.clock()))
        if len(self.queue) > MAX_QUEUE:
            self.queue = self.queue[-MAX_QUEUE:]
        self._save_queue()
        logger.info("Federated contribution queued (%d waiting).", len(self.queue))

        if len(self.queue) >= BATCH_SIZE:
            self.process_batch()
        return True

    def submit_history(
        self, history: List[PerformanceRecord], catalog: Catalog, consent: bool = False
    ) -> bool:
        return self.submit(summaries_from_history(history, catalog), usage_from_history(history), consent)

    @staticmethod
    def summarize(
        local_models: List[LocalModelSummary], usage_history: List[ModelUsageRecord]
    ) -> StatisticalSummary:
        return StatisticalSummary(
            average_work_duration=float(np.mean([m.work_duration for m in local_models])),
            average_completion_rate=float(np.mean([m.average_completion_rate for m in local_models])),
            average_satisfaction=float(np.mean([m.average_satisfaction for m in local_models])),
            sample_count=max(len(local_models), len(usage_history)),
            peak_productivity_hours=list(PEAK_PRODUCTIVITY_HOURS),
        )

    # ── Batch processing ────────────────────────────────────────────────────

    def verify(self, contribution: FederatedContribution, now: Optional[datetime] = None) -> bool:
        age = (now or self.clock()) - contribution.timestamp
        fresh = -CLOCK_SKEW <= age < FRESHNESS
        return fresh and self.commitments.is_well_formed(contribution.proof)

    def process_batch(self) -> bool:
        """Fold the queue into the global model. False if the batch was skipped."""
        now = self.clock()
        valid = [c for c in self.queue if self.verify(c, now)]
        if len(valid) < MIN_VALID_CONTRIBUTIONS:
            logger.info("Not enough valid contributions for aggregation (%d/%d).",
                        len(valid), MIN_VALID_CONTRIBUTIONS)
            return False

        stats: List[StatisticalSummary] = []
        unreadable: List[FederatedContribution] = []
        for contribution in valid:
            try:
                stats.append(StatisticalSummary.from_dict(
                    self.commitments.open(contribution.proof, contribution.commitment)
                ))
            except (DecryptionError, KeyError, TypeError, ValueError) as exc:
                logger.warning("Dropping unreadable contribution: %s", exc)
                unreadable.append(contribution)

        if not stats:
            self.queue = [c for c in self.queue if c not in unreadable]
            self._save_queue()
            logger.warning("No contribution in the batch could be opened; skipping update.")
            return False

        insight = self.aggregate(stats)
        self._update_global_model(insight, len(stats), now)
        self.queue = []
        self._save_queue()
        logger.info("Global model updated to %s with %d contributions.",
                    self.global_model.version, len(stats))
        return True

    def aggregate(self, stats: List[StatisticalSummary]) -> FederatedInsight:
        work = float(np.mean([s.average_work_duration for s in stats]))
        completion = float(np.mean([s.average_completion_rate for s in stats]))
        satisfaction = float(np.mean([s.average_satisfaction for s in stats]))
        sample_size = len(stats)

        fingerprint = AssessmentFingerprint(
            work_style="sustained_flow" if work > 60 else "focused_bursts",
            break_style="mind_clearing" if completion > 0.8 else "light_distraction",
            adaptability=0.8 if satisfaction > 4 else 0.5,
            cluster_size=sample_size,
            success_rate=completion,
            recommended_scenarios=[
                ModelScenario.MORNING_FOCUS,
                ModelScenario.AFTERNOON_SUSTAINED,
                ModelScenario.LEARNING_SESSION,
            ],
        )
        aggregates = [
            PerformanceAggregate(
                scenario=ModelScenario.MORNING_FOCUS,
                average_completion_rate=completion,
                average_satisfaction=satisfaction,
                sample_size=sample_size,
                confidence_interval=(completion - 0.1, completion + 0.1),
            ),
            PerformanceAggregate(
                scenario=ModelScenario.AFTERNOON_SUSTAINED,
                average_completion_rate=completion * 0.95,
                average_satisfaction=satisfaction * 0.98,
                sample_size=sample_size,
                confidence_interval=(completion * 0.9, completion),
            ),
        ]
        return FederatedInsight(assessment_fingerprints=[fingerprint], performance_aggregates=aggregates)

    # ── Global model ────────────────────────────────────────────────────────

    def community_stats(self) -> dict:
        m = self.global_model
        return {
            "total_contributors": m.contributor_count,
            "model_version": m.version,
            "base_performance": m.base_performance,
            "last_update": m.last_updated,
            "privacy_level": "maximum",
        }

    def global_insights(self) -> List[FederatedInsight]:
        return list(self.global_model.insights)

    @property
    def privacy_config(self) -> PrivacyConfig:
        return PrivacyConfig(**self._privacy_config.to_dict())

    def set_privacy_config(self, config: PrivacyConfig) -> None:
        validate_privacy_config(config)
        self._privacy_config = config
        self.mechanism = LaplaceMechanism(config, self._rng)
        self.storage.set(keys.PRIVACY_CONFIG, config.to_dict())

    def _update_global_model(self, insight: FederatedInsight, contributors: int, now: datetime) -> None:
        m = self.global_model
        m.version = bump_patch(m.version)
        m.insights.append(insight)
        m.contributor_count += contributors
        m.base_performance = self._base_performance()
        m.last_updated = now
        m.verification_proof = self._model_proof()
        self.storage.set(keys.GLOBAL_MODEL, m.to_dict())

    def _base_performance(self) -> float:
        recent = self.global_model.insights[-INSIGHT_WINDOW:]
        if not recent:
            return DEFAULT_BASE_PERFORMANCE
        per_insight = [
            float(np.mean([a.average_completion_rate for a in i.performance_aggregates]))
            for i in recent if i.performance_aggregates
        ]
        if not per_insight:
            return DEFAULT_BASE_PERFORMANCE
        return clamp(float(np.mean(per_insight)), 0.5, 0.95)

    def _model_proof(self) -> str:
        m = self.global_model
        return self.commitments.sign({
            "version": m.version,
            "base_performance": m.base_performance,
            "contributor_count": m.contributor_count,
            "insights": len(m.insights),
            "last_updated": m.last_updated.isoformat() if m.last_updated else None,
        })

    # ── Persistence ─────────────────────────────────────────────────────────

    def _save_queue(self) -> None:
        self.storage.set(keys.CONTRIBUTION_QUEUE, [c.to_dict() for c in self.queue])

    def _load(self) -> None:
        raw_model = self.storage.get(keys.GLOBAL_MODEL)
        if raw_model:
            try:
                self.global_model = GlobalModel.from_dict(raw_model)
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Failed to load global model: %s", exc)

        for item in self.storage.get(keys.CONTRIBUTION_QUEUE, []) or []:
            try:
                self.queue.append(FederatedContribution.from_dict(item))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping corrupt queued contribution: %s", exc)

        raw_config = self.storage.get(keys.PRIVACY_CONFIG)
        if raw_config:
            try:
                config = PrivacyConfig.from_dict(raw_config)
                validate_privacy_config(config)
                self._privacy_config = config
            except (TypeError, ValueError) as exc:
                logger.warning("Failed to load privacy config: %s", exc)


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   Turns personal performance history into noisy, committed summaries and
#   folds batches of them into the versioned community model.
#
# Data flow:
#   PerformanceRecorder.history → summaries_from_history() → submit()
#   → LaplaceMechanism.privatize() → CommitmentScheme.commit() → queue
#   → (5 queued) process_batch() → aggregate() → GlobalModel 1.0.N+1
#   → Storage("federated.global_model").
