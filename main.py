"""
Cadence — adaptive work/rest scheduling.
Entry point for the headless scheduler process.
"""

import faulthandler
import logging
import signal
import sys
from pathlib import Path

faulthandler.enable()

# Ensure cadence is importable
sys.path.insert(0, str(Path(__file__).resolve().parent))

from PySide6.QtCore import QCoreApplication, QTimer

from cadence.config import AppConfig
from cadence.data import Catalog, Database, Storage
from cadence.ml.aggregator import FederatedAggregator
from cadence.ml.recommender import RecommendationEngine
from cadence.ml.switching import IntelligentSwitcher, SwitchDecisionPolicy
from cadence.services.context import ActivitySignal, ContextAnalyzer
from cadence.services.events import SessionEvents
from cadence.services.performance import PerformanceRecorder
from cadence.services.prompts import PromptChannel
from cadence.services.scheduler import QtScheduler
from cadence.services.session_clock import SessionClock


def setup_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler("cadence.log", encoding="utf-8"),
        ],
    )


def main() -> None:
    setup_logging()
    logger = logging.getLogger(__name__)
    logger.info("Starting Cadence...")

    app = QCoreApplication(sys.argv)
    app.setApplicationName("Cadence")
    app.setOrganizationName("Cadence")

    # Ctrl+C quits the event loop; the idle timer lets Python see the signal
    signal.signal(signal.SIGINT, lambda *_: app.quit())
    wake = QTimer()
    wake.timeout.connect(lambda: None)
    wake.start(500)

    db = Database()
    db.connect()
    storage = Storage(db.conn)
    config = AppConfig()
    catalog = Catalog()

    scheduler = QtScheduler()
    events = SessionEvents()
    prompts = PromptChannel()
    analyzer = ContextAnalyzer(clock=scheduler.now, activity=ActivitySignal())

    clock = SessionClock(
        scheduler, events, prompts, catalog,
        snooze_minutes=config.get("snooze_minutes"),
        confirmation_timeout_minutes=config.get("confirmation_timeout_minutes"),
        repeat_after_long_rest=config.get("repeat_after_long_rest"),
    )
    recorder = PerformanceRecorder(
        storage, context_provider=lambda: analyzer.current(clock.session), clock=scheduler.now
    )
    recorder.connect(events)

    engine = RecommendationEngine(catalog, recorder, clock=scheduler.now)
    policy = SwitchDecisionPolicy(engine, analyzer, storage)
    switcher = IntelligentSwitcher(
        clock, policy, prompts, scheduler, config=config,
        evaluation_interval_minutes=config.get("evaluation_interval_minutes"),
        realtime_interval_minutes=config.get("realtime_interval_minutes"),
    )
    aggregator = FederatedAggregator(storage, clock=scheduler.now)

    events.break_taken.connect(
        lambda model_id, is_long, minutes: logger.info(
            "Break: %s %s rest (%g min)", model_id, "long" if is_long else "short", minutes)
    )
    events.exercise_completed.connect(lambda name: logger.info("Exercise completed: %s", name))
    events.model_switched.connect(
        lambda old, new: logger.info("Switched model %s → %s", old or "-", new)
    )

    def on_session_completed(model_id: str, elapsed: float, rate: float) -> None:
        if config.get("federated_consent"):
            aggregator.submit_history(recorder.history, catalog, consent=True)

    events.session_completed.connect(on_session_completed)

    if config.get("auto_switching") and policy.is_active:
        switcher.start()

    session = clock.initialize_from_config(config.startup_model_id)
    if session is None:
        default = catalog.default()
        if default is not None:
            logger.info("No startup model configured; using %s.", default.id)
            clock.start(default)

    logger.info("Application started.")
    code = app.exec()
    clock.stop()
    db.close()
    sys.exit(code)


if __name__ == "__main__":
    main()


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   Builds every component once, wires them through the event bus and the
#   prompt channel, and runs the Qt event loop that drives the timers.
#
# Data flow:
#   QtScheduler deadline → SessionClock → SessionEvents
#   → PerformanceRecorder (history) → RecommendationEngine
#   → IntelligentSwitcher (prompts) → SessionClock.switch_model.
#   Prompts nobody answers fall back to the confirmation timeout.
