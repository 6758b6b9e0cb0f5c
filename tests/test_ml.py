"""Unit tests for the recommendation engine and model switching."""

import sqlite3
import pytest
from datetime import datetime, timedelta
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from cadence.config import AppConfig
from cadence.data import storage as keys
from cadence.data.catalog import Catalog
from cadence.data.database import SCHEMA_SQL
from cadence.data.models import ActivitySnapshot, Context
from cadence.data.storage import Storage
from cadence.ml.recommender import RecommendationEngine
from cadence.ml.switching import (
    DISABLE_AUTO, KEEP_CURRENT, SWITCH_NOW, IntelligentSwitcher, SwitchDecisionPolicy,
)
from cadence.services.context import ContextAnalyzer, StaticActivitySignal
from cadence.services.events import SessionEvents
from cadence.services.performance import PerformanceRecorder
from cadence.services.prompts import (
    AUTO_SWITCH, TIME_SUGGESTION, WORK_TYPE_SUGGESTION, PromptChannel,
)
from cadence.services.scheduler import ManualScheduler
from cadence.services.session_clock import SessionClock

T0 = datetime(2024, 3, 4, 9, 0)
MORNING = Context("morning", "high", "deep_coding")


@pytest.fixture
def storage():
    conn = sqlite3.connect(":memory:")
    conn.executescript(SCHEMA_SQL)
    conn.commit()
    return Storage(conn)


@pytest.fixture
def recorder(storage):
    return PerformanceRecorder(storage, lambda: MORNING, clock=lambda: T0)


@pytest.fixture
def engine(recorder):
    return RecommendationEngine(Catalog(), recorder, clock=lambda: T0)


def _seed(recorder, model_id, count, completion=1.0, satisfaction=5.0,
          context=MORNING, duration=30):
    for _ in range(count):
        recorder.record(model_id, duration, completion, satisfaction, context)


class FixedRandom:
    """Stands in for random.Random with a constant draw."""

    def __init__(self, value: float) -> None:
        self.value = value

    def random(self) -> float:
        return self.value


class TestRecommendationEngine:
    def test_empty_catalog_returns_none(self, recorder):
        engine = RecommendationEngine(Catalog([]), recorder, clock=lambda: T0)
        assert engine.recommend(MORNING) is None

    def test_two_matching_records_use_fallback(self, engine, recorder):
        _seed(recorder, "custom-flexible", 2)
        rec = engine.recommend(MORNING)
        assert rec.is_fallback
        assert rec.confidence == 0.6
        assert rec.recommended_model.id == "who-2hour-work-1hour-rest"
        assert rec.alternative_models == []

    @pytest.mark.parametrize("time_of_day,model_id", [
        ("morning", "who-2hour-work-1hour-rest"),
        ("afternoon", "who-1hour-work-30min-rest"),
        ("evening", "pomodoro-classic"),
    ])
    def test_fallback_by_time_of_day(self, engine, time_of_day, model_id):
        rec = engine.recommend(Context(time_of_day, "medium", "deep_coding"))
        assert rec.recommended_model.id == model_id

    def test_weighted_path(self, engine, recorder):
        _seed(recorder, "custom-flexible", 5)
        rec = engine.recommend(MORNING)
        assert not rec.is_fallback
        assert rec.recommended_model.id == "custom-flexible"
        assert rec.confidence == pytest.approx(0.5)
        assert len(rec.alternative_models) == 3
        assert all(a.confidence == 0.2 for a in rec.alternative_models)
        assert rec.expected_improvement == "67% better performance"
        assert "50min work" in rec.reason

    def test_confidence_is_capped(self, engine, recorder):
        _seed(recorder, "custom-flexible", 12)
        assert engine.recommend(MORNING).confidence == 0.95

    def test_other_contexts_do_not_count(self, engine, recorder):
        _seed(recorder, "custom-flexible", 5, context=Context("evening", "low", "deep_coding"))
        _seed(recorder, "custom-flexible", 5, context=Context("morning", "high", "creative"))
        assert engine.recommend(MORNING).is_fallback

    def test_stale_history_is_ignored(self, recorder):
        _seed(recorder, "custom-flexible", 5)
        later = RecommendationEngine(Catalog(), recorder, clock=lambda: T0 + timedelta(days=31))
        assert later.recommend(MORNING).is_fallback

    def test_history_exactly_thirty_days_old_counts(self, recorder):
        _seed(recorder, "custom-flexible", 3)
        later = RecommendationEngine(Catalog(), recorder, clock=lambda: T0 + timedelta(days=30))
        assert len(later.relevant_history(MORNING)) == 3
        assert not later.recommend(MORNING).is_fallback

    def test_rate_model(self, engine, recorder):
        assert engine.rate_model("custom-flexible", MORNING) == 0.5
        _seed(recorder, "custom-flexible", 2, completion=0.5, satisfaction=4.0)
        assert engine.rate_model("custom-flexible", MORNING) == pytest.approx(0.3 + 0.3)


# ── Switching ────────────────────────────────────────────────────────────────

@pytest.fixture
def world(storage, tmp_path):
    """A fully wired clock + switcher on a manual scheduler."""

    class World:
        pass

    w = World()
    w.scheduler = ManualScheduler(start=T0)
    w.events = SessionEvents()
    w.prompts = PromptChannel()
    w.catalog = Catalog()
    w.config = AppConfig(tmp_path / "cadence.json")
    w.activity = StaticActivitySignal()
    w.analyzer = ContextAnalyzer(clock=w.scheduler.now, activity=w.activity)
    w.clock = SessionClock(w.scheduler, w.events, w.prompts, w.catalog)
    w.recorder = PerformanceRecorder(
        storage, lambda: w.analyzer.current(w.clock.session), clock=w.scheduler.now
    )
    w.engine = RecommendationEngine(w.catalog, w.recorder, clock=w.scheduler.now)
    w.policy = SwitchDecisionPolicy(w.engine, w.analyzer, storage)
    w.switcher = IntelligentSwitcher(
        w.clock, w.policy, w.prompts, w.scheduler, config=w.config, rng=FixedRandom(0.9)
    )
    return w


class TestSwitchDecisionPolicy:
    def test_no_session(self, world):
        assert not world.policy.evaluate(None).should_switch

    def test_short_session_never_switches(self, world):
        _seed(world.recorder, "custom-flexible", 9)
        world.clock.start_by_id("who-90min-work-30min-rest")
        world.scheduler.advance(29)
        decision = world.policy.evaluate(world.clock.session)
        assert not decision.should_switch
        assert decision.reason == "Session too short to judge"

    def test_switches_when_all_conditions_hold(self, world):
        _seed(world.recorder, "custom-flexible", 8)
        world.clock.start_by_id("who-90min-work-30min-rest")
        world.scheduler.advance(35)
        decision = world.policy.evaluate(world.clock.session)
        assert decision.should_switch
        assert decision.target_model.id == "custom-flexible"
        assert decision.confidence == pytest.approx(0.8)
        assert decision.expected_benefit == pytest.approx(50)

    def test_low_confidence(self, world):
        _seed(world.recorder, "custom-flexible", 3)
        world.clock.start_by_id("who-90min-work-30min-rest")
        world.scheduler.advance(35)
        decision = world.policy.evaluate(world.clock.session)
        assert not decision.should_switch
        assert decision.reason == "Recommendation confidence too low"

    def test_already_on_best_model(self, world):
        _seed(world.recorder, "custom-flexible", 8)
        world.clock.start_by_id("custom-flexible")
        world.scheduler.advance(35)
        assert not world.policy.evaluate(world.clock.session).should_switch

    def test_not_while_resting(self, world):
        _seed(world.recorder, "custom-flexible", 8)
        world.clock.start_by_id("who-90min-work-30min-rest")
        world.scheduler.advance(35)
        world.clock.take_manual_break()
        assert not world.policy.evaluate(world.clock.session).should_switch

    def test_small_benefit(self, world):
        _seed(world.recorder, "custom-flexible", 8)
        _seed(world.recorder, "who-90min-work-30min-rest", 8, completion=0.9, satisfaction=4.5)
        world.clock.start_by_id("who-90min-work-30min-rest")
        world.scheduler.advance(35)
        decision = world.policy.evaluate(world.clock.session)
        assert not decision.should_switch
        assert decision.reason == "Expected benefit too small"
        assert decision.expected_benefit == pytest.approx(11)

    def test_cooldown_survives_restart(self, world, storage):
        _seed(world.recorder, "custom-flexible", 8)
        world.clock.start_by_id("who-90min-work-30min-rest")
        world.scheduler.advance(35)
        world.policy.mark_switched(world.scheduler.now() - timedelta(minutes=10))

        reloaded = SwitchDecisionPolicy(world.engine, world.analyzer, storage)
        decision = reloaded.evaluate(world.clock.session)
        assert not decision.should_switch
        assert decision.reason == "Switch cooldown active"

        world.scheduler.advance(20)
        assert reloaded.evaluate(world.clock.session).should_switch

    def test_corrupt_state_falls_back(self, world, storage):
        storage.set(keys.SWITCHER_STATE, {"last_switch_time": "not a date"})
        policy = SwitchDecisionPolicy(world.engine, world.analyzer, storage)
        assert policy.last_switch_time is None
        assert policy.is_active


class TestIntelligentSwitcher:
    def test_evaluation_tick_prompts_and_switches(self, world):
        _seed(world.recorder, "custom-flexible", 8)
        world.clock.start_by_id("who-90min-work-30min-rest")
        world.switcher.start()
        world.scheduler.advance(30)

        prompt = world.prompts.latest(AUTO_SWITCH)
        assert prompt is not None
        assert prompt.payload == {"from": "who-90min-work-30min-rest", "to": "custom-flexible"}
        assert "50% performance improvement" in prompt.message

        world.prompts.answer(SWITCH_NOW, prompt)
        assert world.clock.session.model.id == "custom-flexible"
        assert world.clock.session.current_cycle == 1
        assert world.policy.last_switch_time == world.scheduler.now()
        assert world.config.startup_model_id == "custom-flexible"

    def test_keep_current(self, world):
        _seed(world.recorder, "custom-flexible", 8)
        world.clock.start_by_id("who-90min-work-30min-rest")
        world.switcher.start()
        world.scheduler.advance(30)
        world.prompts.answer(KEEP_CURRENT, world.prompts.latest(AUTO_SWITCH))
        assert world.clock.session.model.id == "who-90min-work-30min-rest"
        assert world.policy.last_switch_time is None

    def test_disable_stops_ticks(self, world, storage):
        _seed(world.recorder, "custom-flexible", 8)
        world.clock.start_by_id("who-90min-work-30min-rest")
        world.switcher.start()
        world.scheduler.advance(30)
        world.prompts.answer(DISABLE_AUTO, world.prompts.latest(AUTO_SWITCH))
        assert not world.switcher.is_active
        assert storage.get(keys.SWITCHER_STATE)["is_active"] is False

        world.scheduler.advance(20)
        assert world.prompts.pending(AUTO_SWITCH) == []

    def test_stale_switch_is_skipped(self, world):
        world.clock.start_by_id("custom-flexible")
        assert world.switcher.execute_switch("pomodoro-classic", "who-90min-work-30min-rest") is False
        assert world.clock.session.model.id == "custom-flexible"

    def test_time_of_day_suggestion(self, world):
        world.scheduler = ManualScheduler(start=datetime(2024, 3, 4, 11, 50))
        world.analyzer.clock = world.scheduler.now
        world.engine.clock = world.scheduler.now
        world.clock = SessionClock(world.scheduler, world.events, world.prompts, world.catalog)
        world.switcher = IntelligentSwitcher(
            world.clock, world.policy, world.prompts, world.scheduler, rng=FixedRandom(0.1)
        )
        world.activity.snapshot = ActivitySnapshot(0, ["Deep work block ahead"])
        world.clock.start_by_id("who-90min-work-30min-rest")
        world.switcher.start()

        world.scheduler.advance(5)
        assert world.prompts.pending(TIME_SUGGESTION) == []
        world.scheduler.advance(5)
        prompt = world.prompts.latest(TIME_SUGGESTION)
        assert prompt is not None
        assert prompt.payload["to"] == "who-1hour-work-30min-rest"
        assert world.prompts.pending(WORK_TYPE_SUGGESTION) == []

    def test_time_of_day_suggestion_mostly_suppressed(self, world):
        world.scheduler.advance_to(datetime(2024, 3, 4, 11, 50))
        world.activity.snapshot = ActivitySnapshot(0, ["Deep work block ahead"])
        world.clock.start_by_id("who-90min-work-30min-rest")
        world.switcher.start()
        world.scheduler.advance(10)
        assert world.prompts.pending(TIME_SUGGESTION) == []

    def test_work_type_mismatch_suggestion(self, world):
        world.activity.snapshot = ActivitySnapshot(0, ["Use creative breaks"])
        world.clock.start_by_id("who-90min-work-30min-rest")
        world.switcher.start()
        world.scheduler.advance(5)
        prompt = world.prompts.latest(WORK_TYPE_SUGGESTION)
        assert prompt is not None
        assert prompt.payload["to"] == "who-2hour-work-1hour-rest"

        world.prompts.answer(SWITCH_NOW, prompt)
        assert world.clock.session.model.id == "who-2hour-work-1hour-rest"

    def test_no_suggestions_without_activity(self, world):
        world.clock.start_by_id("who-90min-work-30min-rest")
        world.switcher.start()
        world.scheduler.advance(25)
        assert world.prompts.pending(WORK_TYPE_SUGGESTION) == []
        assert world.prompts.pending(TIME_SUGGESTION) == []
