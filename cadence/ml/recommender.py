"""
Recommendation Engine — which work/rest model suits this context best?

Strategy:
  1. Take the history recorded in the same time of day and work type over
     the last 30 days.
  2. Fewer than 3 matching records → static time-of-day fallback
     (confidence 0.6).
  3. Otherwise score every catalog model from its own matching records:
        40% completion rate, 30% satisfaction, 30% break effectiveness
     Confidence grows with the number of records, capped at 0.95.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

import numpy as np

from cadence.data.catalog import Catalog
from cadence.data.models import (
    AlternativeModel, Context, PerformanceRecord, Recommendation, WorkRestModel,
)
from cadence.services.performance import PerformanceRecorder

logger = logging.getLogger(__name__)

RELEVANCE_WINDOW = timedelta(days=30)
MIN_RELEVANT_RECORDS = 3
FALLBACK_CONFIDENCE = 0.6
NO_DATA_SCORE = 0.3
NO_DATA_CONFIDENCE = 0.2
MAX_CONFIDENCE = 0.95
DEFAULT_RATING = 0.5
MAX_ALTERNATIVES = 3


def _normalized_satisfaction(values: List[float]) -> float:
    """Map the 1-5 satisfaction scale onto 0-1."""
    return (float(np.mean(values)) - 1) / 4


class RecommendationEngine:
    def __init__(
        self,
        catalog: Catalog,
        recorder: PerformanceRecorder,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.catalog = catalog
        self.recorder = recorder
        self.clock = clock

    # ── Public API ──────────────────────────────────────────────────────────

    def recommend(self, context: Context) -> Optional[Recommendation]:
        """Best model for `context`, or None when the catalog is empty."""
        models = self.catalog.list()
        if not models:
            return None

        relevant = self.relevant_history(context)
        if len(relevant) < MIN_RELEVANT_RECORDS:
            return self._fallback(context, models)

        ratings = []
        for model in models:
            subset = [r for r in relevant if r.model_id == model.id]
            if not subset:
                ratings.append((model, NO_DATA_SCORE, NO_DATA_CONFIDENCE))
                continue
            completion = float(np.mean([r.performance.completion_rate for r in subset]))
            satisfaction = _normalized_satisfaction([r.performance.satisfaction_score for r in subset])
            effectiveness = float(np.mean([r.performance.break_effectiveness for r in subset]))
            score = completion * 0.4 + satisfaction * 0.3 + effectiveness * 0.3
            confidence = min(MAX_CONFIDENCE, len(subset) / 10)
            ratings.append((model, score, confidence))

        # stable sort keeps catalog order among equal scores
        ratings.sort(key=lambda r: r[1], reverse=True)
        best_model, best_score, best_confidence = ratings[0]
        baseline = ratings[3][1] if len(ratings) > 3 else DEFAULT_RATING

        return Recommendation(
            recommended_model=best_model,
            confidence=best_confidence,
            reason=self._reason(context, best_model),
            expected_improvement=f"{round((best_score - baseline) * 100)}% better performance",
            alternative_models=[
                AlternativeModel(
                    model=model,
                    confidence=confidence,
                    suitability=self._suitability(context, model),
                )
                for model, _, confidence in ratings[1:1 + MAX_ALTERNATIVES]
            ],
        )

    def rate_model(self, model_id: str, context: Context) -> float:
        """0.6·completion + 0.4·satisfaction over matching history; 0.5 without any."""
        subset = [r for r in self.relevant_history(context) if r.model_id == model_id]
        if not subset:
            return DEFAULT_RATING
        completion = float(np.mean([r.performance.completion_rate for r in subset]))
        satisfaction = _normalized_satisfaction([r.performance.satisfaction_score for r in subset])
        return completion * 0.6 + satisfaction * 0.4

    def relevant_history(self, context: Context) -> List[PerformanceRecord]:
        cutoff = self.clock() - RELEVANCE_WINDOW
        return [
            r for r in self.recorder.history
            if r.context.time_of_day == context.time_of_day
            and r.context.work_type == context.work_type
            and r.timestamp >= cutoff
        ]

    # ── Internal ────────────────────────────────────────────────────────────

    def _fallback(self, context: Context, models: List[WorkRestModel]) -> Recommendation:
        by_work = sorted(models, key=lambda m: m.work_duration)
        if context.time_of_day == "morning":
            model = by_work[-1]
            reason = "Morning energy focus - longer work periods"
            improvement = "Based on typical morning energy patterns"
        elif context.time_of_day == "afternoon":
            model = by_work[len(by_work) // 2]
            reason = "Afternoon sustained productivity"
            improvement = "Optimized for post-lunch focus"
        else:
            model = by_work[0]
            reason = "Evening recovery - shorter, gentler sessions"
            improvement = "Better for winding down"
        logger.debug("Not enough history for %s/%s; using %s fallback",
                     context.time_of_day, context.work_type, model.id)
        return Recommendation(
            recommended_model=model,
            confidence=FALLBACK_CONFIDENCE,
            reason=reason,
            expected_improvement=improvement,
            is_fallback=True,
        )

    @staticmethod
    def _reason(context: Context, model: WorkRestModel) -> str:
        work_type = context.work_type.replace("_", " ").capitalize()
        return (f"Optimized for {context.time_of_day.capitalize()} {work_type} "
                f"({model.work_duration:g}min work, {model.rest_duration:g}min rest)")

    @staticmethod
    def _suitability(context: Context, model: WorkRestModel) -> str:
        return f"Good {context.energy_level} energy option ({model.work_duration:g}min work)"
