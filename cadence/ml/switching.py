"""
Model switching — when should a recommendation become an actual switch?

SwitchDecisionPolicy is the gate. A recommendation only turns into a switch
when every condition holds:
    - it names a different model than the running one
    - confidence ≥ 0.7
    - at least 30 minutes since the last switch
    - at least 30 minutes of work in the current session
    - expected benefit ≥ 15 percentage points

IntelligentSwitcher runs the gate every 10 minutes and asks the user before
executing. A faster 5-minute tick only *suggests* switches when the time of
day rolls over or the detected work type stops matching the running model.
"""

from __future__ import annotations

import logging
import random
from datetime import datetime, timedelta
from typing import Optional

from cadence.config import AppConfig
from cadence.data import storage as keys
from cadence.data.models import Context, Recommendation, Session, SwitchingDecision
from cadence.data.storage import Storage
from cadence.ml.recommender import RecommendationEngine
from cadence.services.context import ContextAnalyzer, detect_work_type, infer_model_work_type
from cadence.services.prompts import (
    AUTO_SWITCH, TIME_SUGGESTION, WORK_TYPE_SUGGESTION, Prompt, PromptChannel,
)
from cadence.services.scheduler import DeadlineScheduler
from cadence.services.session_clock import SessionClock

logger = logging.getLogger(__name__)

MIN_CONFIDENCE = 0.7
SWITCH_COOLDOWN = timedelta(minutes=30)
MIN_ELAPSED_WORK_MINUTES = 30
MIN_EXPECTED_BENEFIT = 15.0
TIME_SUGGESTION_RATE = 0.3      # share of time-of-day prompts actually shown

SWITCH_NOW = "Switch Now"
KEEP_CURRENT = "Keep Current"
LATER = "Later"
DISABLE_AUTO = "Disable Auto-Switching"
DISABLE_SUGGESTIONS = "Turn Off Suggestions"


class SwitchDecisionPolicy:
    def __init__(
        self,
        engine: RecommendationEngine,
        analyzer: ContextAnalyzer,
        storage: Storage,
    ) -> None:
        self.engine = engine
        self.analyzer = analyzer
        self.storage = storage
        self.last_switch_time: Optional[datetime] = None
        self.is_active = True
        self._load()

    def evaluate(self, session: Optional[Session], now: Optional[datetime] = None) -> SwitchingDecision:
        now = now or self.analyzer.clock()
        if session is None or not session.is_working:
            return SwitchingDecision(False, "No work period in progress")

        context = self.analyzer.current(session)
        current = session.model
        recommendation = self.engine.recommend(context)
        if recommendation is None or recommendation.recommended_model.id == current.id:
            return SwitchingDecision(False, "Current model is already the best fit")

        if recommendation.confidence < MIN_CONFIDENCE:
            return SwitchingDecision(False, "Recommendation confidence too low",
                                     confidence=recommendation.confidence)

        if self.last_switch_time is not None and now - self.last_switch_time < SWITCH_COOLDOWN:
            return SwitchingDecision(False, "Switch cooldown active")

        elapsed = (now - session.start_time).total_seconds() / 60.0
        if elapsed < MIN_ELAPSED_WORK_MINUTES:
            return SwitchingDecision(False, "Session too short to judge")

        benefit = self.expected_benefit(current.id, recommendation.recommended_model.id, context)
        if benefit < MIN_EXPECTED_BENEFIT:
            return SwitchingDecision(False, "Expected benefit too small",
                                     confidence=recommendation.confidence,
                                     expected_benefit=benefit)

        return SwitchingDecision(
            should_switch=True,
            target_model=recommendation.recommended_model,
            reason=recommendation.reason,
            confidence=recommendation.confidence,
            expected_benefit=benefit,
        )

    def expected_benefit(self, current_id: str, target_id: str, context: Context) -> float:
        current = self.engine.rate_model(current_id, context)
        target = self.engine.rate_model(target_id, context)
        return max(0.0, (target - current) * 100)

    def mark_switched(self, now: datetime) -> None:
        self.last_switch_time = now
        self.save()

    def save(self) -> None:
        self.storage.set(keys.SWITCHER_STATE, {
            "last_switch_time": self.last_switch_time.isoformat() if self.last_switch_time else None,
            "is_active": self.is_active,
        })

    def _load(self) -> None:
        state = self.storage.get(keys.SWITCHER_STATE, {}) or {}
        try:
            stamp = state.get("last_switch_time")
            self.last_switch_time = datetime.fromisoformat(stamp) if stamp else None
            self.is_active = bool(state.get("is_active", True))
        except (AttributeError, TypeError, ValueError) as exc:
            logger.warning("Failed to load switcher state: %s", exc)
            self.last_switch_time = None
            self.is_active = True


class IntelligentSwitcher:
    """Runs the evaluation ticks and turns accepted decisions into prompts."""

    def __init__(
        self,
        clock: SessionClock,
        policy: SwitchDecisionPolicy,
        prompts: PromptChannel,
        scheduler: DeadlineScheduler,
        config: Optional[AppConfig] = None,
        rng: Optional[random.Random] = None,
        evaluation_interval_minutes: float = 10,
        realtime_interval_minutes: float = 5,
    ) -> None:
        self.clock = clock
        self.policy = policy
        self.prompts = prompts
        self.scheduler = scheduler
        self.config = config
        self.rng = rng or random.Random()
        self.evaluation_interval_minutes = evaluation_interval_minutes
        self.realtime_interval_minutes = realtime_interval_minutes
        self._ticks: list = []
        self._last_time_of_day: Optional[str] = None

    # ── Lifecycle ───────────────────────────────────────────────────────────

    @property
    def is_active(self) -> bool:
        return self.policy.is_active

    def start(self) -> None:
        self.policy.is_active = True
        if not self._ticks:
            self._ticks = [
                self.scheduler.every(self.evaluation_interval_minutes, self.evaluate_tick),
                self.scheduler.every(self.realtime_interval_minutes, self.realtime_tick),
            ]
        logger.info("Intelligent model switching activated.")

    def stop(self) -> None:
        self.policy.is_active = False
        for tick_id in self._ticks:
            self.scheduler.cancel_tick(tick_id)
        self._ticks = []
        self.policy.save()
        logger.info("Intelligent model switching stopped.")

    # ── Ticks ───────────────────────────────────────────────────────────────

    def evaluate_tick(self) -> Optional[SwitchingDecision]:
        if not self.is_active:
            return None
        session = self.clock.session
        if session is None or not session.is_working:
            return None
        decision = self.policy.evaluate(session, self.scheduler.now())
        if decision.should_switch:
            self._ask_auto_switch(decision)
        else:
            logger.debug("No switch: %s", decision.reason)
        return decision

    def realtime_tick(self) -> None:
        if not self.is_active:
            return
        session = self.clock.session
        analyzer = self.policy.analyzer
        snapshot = analyzer.activity.current()
        if session is None or snapshot is None:
            return

        context = analyzer.current(session)
        previous, self._last_time_of_day = self._last_time_of_day, context.time_of_day
        if previous is not None and previous != context.time_of_day:
            recommendation = self.policy.engine.recommend(context)
            if recommendation and recommendation.recommended_model.id != session.model.id:
                if self.rng.random() < TIME_SUGGESTION_RATE:
                    self._suggest(TIME_SUGGESTION, "Time-Based Suggestion", recommendation,
                                  (SWITCH_NOW, LATER, DISABLE_SUGGESTIONS))

        detected = detect_work_type(snapshot)
        if infer_model_work_type(session.model) != detected:
            work_context = Context(
                time_of_day=context.time_of_day,
                energy_level=context.energy_level,
                work_type=detected,
                session_duration=context.session_duration,
                day_of_week=context.day_of_week,
            )
            recommendation = self.policy.engine.recommend(work_context)
            if recommendation and recommendation.recommended_model.id != session.model.id:
                self._suggest(WORK_TYPE_SUGGESTION, "Work Context Switch", recommendation,
                              (SWITCH_NOW, KEEP_CURRENT, DISABLE_SUGGESTIONS))

    # ── Prompts ─────────────────────────────────────────────────────────────

    def _ask_auto_switch(self, decision: SwitchingDecision) -> None:
        current = self.clock.session.model
        target = decision.target_model
        self.prompts.dismiss(AUTO_SWITCH)
        self.prompts.ask(
            Prompt(
                kind=AUTO_SWITCH,
                message=(f"Intelligent Model Switch: {current.name} → {target.name}\n"
                         f"Expected: {round(decision.expected_benefit)}% performance improvement\n"
                         f"Confidence: {round(decision.confidence * 100)}%\n"
                         f"Reason: {decision.reason}"),
                choices=(SWITCH_NOW, KEEP_CURRENT, DISABLE_AUTO),
                payload={"from": current.id, "to": target.id},
            ),
            lambda choice: self._on_answer(choice, current.id, target.id),
        )

    def _suggest(self, kind: str, title: str, recommendation: Recommendation, choices: tuple) -> None:
        current = self.clock.session.model
        target = recommendation.recommended_model
        self.prompts.dismiss(kind)
        self.prompts.ask(
            Prompt(
                kind=kind,
                message=(f"{title}: {target.name}\n"
                         f"Reason: {recommendation.reason}\n"
                         f"Confidence: {round(recommendation.confidence * 100)}%"),
                choices=choices,
                payload={"from": current.id, "to": target.id},
            ),
            lambda choice: self._on_answer(choice, current.id, target.id),
        )

    def _on_answer(self, choice: str, from_id: str, to_id: str) -> None:
        if choice == SWITCH_NOW:
            self.execute_switch(from_id, to_id)
        elif choice in (DISABLE_AUTO, DISABLE_SUGGESTIONS):
            self.stop()

    def execute_switch(self, from_id: str, to_id: str) -> bool:
        """Switch if the session is still running `from_id`."""
        session = self.clock.session
        if session is None or session.model.id != from_id or from_id == to_id:
            logger.info("Skipping switch %s → %s; session has moved on.", from_id, to_id)
            return False
        self.clock.switch_model(to_id)
        self.policy.mark_switched(self.scheduler.now())
        if self.config is not None:
            self.config.remember_model(to_id)
        logger.info("Model switched: %s → %s", from_id, to_id)
        return True
