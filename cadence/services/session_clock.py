"""
Session Clock — drives the live work/rest session.

Phases:
    idle → working → (resting_short | resting_long) → working → ... → idle

Every phase ends on an absolute deadline (end_time). The clock owns exactly
one armed deadline at a time through the scheduler; each transition
re-arms, which cancels the previous deadline and makes any late callback
for it stale.

When a work period ends the user is asked to confirm the rest (or snooze).
The clock does not wait for the answer: it arms a confirmation timeout and,
if nobody answers in time, starts the rest on its own.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from functools import partial
from typing import Callable, Optional, Union

from cadence.data.catalog import Catalog
from cadence.data.models import Session, SessionPhase, WorkRestModel
from cadence.errors import MissingModelError
from cadence.services.events import SessionEvents
from cadence.services.prompts import WORK_COMPLETE, Prompt, PromptChannel
from cadence.services.scheduler import DeadlineScheduler

logger = logging.getLogger(__name__)

ACCEPT_REST = "Take Break Now"
DEFAULT_SNOOZE_MINUTES = 5
DEFAULT_CONFIRMATION_TIMEOUT_MINUTES = 2


def planned_minutes(model: WorkRestModel, total_cycles: int) -> float:
    """Planned length of a full session: every work block and the rests between them."""
    if total_cycles <= 0:
        return model.work_duration + model.rest_duration
    return model.work_duration * total_cycles + model.rest_duration * (total_cycles - 1)


def _minutes(delta: timedelta) -> float:
    return delta.total_seconds() / 60.0


class SessionClock:
    """
    Owns the single live Session.

    Only ONE session can be active at a time. Commands (start, stop, manual
    break, end rest early, switch) and deadline callbacks are serialised by
    one re-entrant lock.
    """

    def __init__(
        self,
        scheduler: DeadlineScheduler,
        events: SessionEvents,
        prompts: PromptChannel,
        catalog: Optional[Catalog] = None,
        snooze_minutes: float = DEFAULT_SNOOZE_MINUTES,
        confirmation_timeout_minutes: float = DEFAULT_CONFIRMATION_TIMEOUT_MINUTES,
        repeat_after_long_rest: bool = False,
    ) -> None:
        self.scheduler = scheduler
        self.events = events
        self.prompts = prompts
        # An empty catalog is falsy; only a missing one gets the built-ins
        self.catalog = catalog if catalog is not None else Catalog()
        self.snooze_minutes = snooze_minutes
        self.confirmation_timeout_minutes = confirmation_timeout_minutes
        self.repeat_after_long_rest = repeat_after_long_rest

        self.session: Optional[Session] = None
        self._armed_generation: Optional[int] = None
        self._confirmation: Optional[Prompt] = None
        self._segment_started_at: Optional[datetime] = None
        self._lock = threading.RLock()

    # ── State ───────────────────────────────────────────────────────────────

    @property
    def state(self) -> str:
        return self.session.phase if self.session else SessionPhase.IDLE

    @property
    def snooze_choice(self) -> str:
        return f"Snooze {self.snooze_minutes:g} min"

    def now(self) -> datetime:
        return self.scheduler.now()

    # ── Session lifecycle ───────────────────────────────────────────────────

    def start(self, model: WorkRestModel) -> Session:
        """Start a new session with the first work period."""
        with self._lock:
            if self.session is not None:
                raise RuntimeError("A session is already active.")
            now = self.now()
            self.session = Session(
                model=model,
                start_time=now,
                end_time=now + timedelta(minutes=model.work_duration),
                phase_start_time=now,
                current_cycle=1,
                phase=SessionPhase.WORKING,
                total_cycles=model.cycles or 0,
            )
            self._segment_started_at = now
            self._arm(self.session.end_time, self._on_work_deadline)
            logger.info("Started %s session (work %g min, rest %g min)",
                        model.name, model.work_duration, model.rest_duration)
            self.events.session_started.emit(model.id)
            return self.session

    def start_by_id(self, model_id: str) -> Session:
        model = self.catalog.by_id(model_id)
        if model is None:
            raise MissingModelError(model_id)
        return self.start(model)

    def initialize_from_config(self, model_id: Optional[str]) -> Optional[Session]:
        """Start the configured startup model, if it still exists."""
        if not model_id:
            return None
        model = self.catalog.by_id(model_id)
        if model is None:
            logger.warning("Configured model %s not in catalog; not starting.", model_id)
            return None
        return self.start(model)

    def stop(self) -> None:
        """End the session without recording an outcome."""
        with self._lock:
            self._disarm()
            self._withdraw_confirmation()
            if self.session is None:
                return
            model_id = self.session.model.id
            self.session = None
            self._segment_started_at = None
            logger.info("Stopped %s session.", model_id)
            self.events.session_stopped.emit(model_id)

    def switch_model(self, model: Union[WorkRestModel, str]) -> Session:
        """Stop the current session and start `model` from cycle 1."""
        with self._lock:
            if isinstance(model, str):
                resolved = self.catalog.by_id(model)
                if resolved is None:
                    raise MissingModelError(model)
                model = resolved
            previous = self.session.model.id if self.session else ""
            self.stop()
            session = self.start(model)
            self.events.model_switched.emit(previous, model.id)
            return session

    # ── Manual controls ─────────────────────────────────────────────────────

    def take_manual_break(self) -> bool:
        """Start the rest right now. False (and no change) unless working."""
        with self._lock:
            if self.session is None or not self.session.is_working:
                return False
            self._withdraw_confirmation()
            self._start_rest()
            return True

    def end_rest_early(self) -> bool:
        """Go back to work for the same cycle. False (and no change) unless resting."""
        with self._lock:
            if self.session is None or not self.session.is_resting:
                return False
            self._start_work()
            logger.info("Rest ended early; back to work on cycle %d.", self.session.current_cycle)
            return True

    # ── Queries ─────────────────────────────────────────────────────────────

    def time_remaining(self) -> Optional[timedelta]:
        """end_time - now, never negative. None when idle."""
        if self.session is None:
            return None
        return max(timedelta(0), self.session.end_time - self.now())

    def elapsed_minutes(self) -> float:
        """Minutes since the session started."""
        if self.session is None:
            return 0.0
        return _minutes(self.now() - self.session.start_time)

    def status(self) -> Optional[dict]:
        if self.session is None:
            return None
        remaining = self.time_remaining()
        total_seconds = int(remaining.total_seconds())
        return {
            "phase": "work" if self.session.is_working else "rest",
            "minutes": total_seconds // 60,
            "seconds": total_seconds % 60,
            "model": self.session.model.name,
            "cycle": self.session.current_cycle,
            "total_cycles": self.session.total_cycles,
            "awaiting_confirmation": self.session.awaiting_confirmation,
        }

    # ── Phase transitions ───────────────────────────────────────────────────

    def _start_work(self) -> None:
        s = self.session
        now = self.now()
        s.phase = SessionPhase.WORKING
        s.phase_start_time = now
        s.end_time = now + timedelta(minutes=s.model.work_duration)
        s.awaiting_confirmation = False
        self._arm(s.end_time, self._on_work_deadline)

    def _start_rest(self) -> None:
        s = self.session
        now = self.now()
        is_long = self._is_long_rest(s)
        duration = s.model.long_rest_duration if is_long else s.model.rest_duration
        s.phase = SessionPhase.RESTING_LONG if is_long else SessionPhase.RESTING_SHORT
        s.phase_start_time = now
        s.end_time = now + timedelta(minutes=duration)
        s.awaiting_confirmation = False
        self._arm(s.end_time, self._on_rest_deadline)
        logger.info("%s rest for %g min (cycle %d).", "Long" if is_long else "Short",
                    duration, s.current_cycle)
        self.events.break_taken.emit(s.model.id, is_long, float(duration))

    @staticmethod
    def _is_long_rest(s: Session) -> bool:
        m = s.model
        return bool(m.cycles and s.current_cycle >= m.cycles and m.long_rest_duration)

    # ── Deadline callbacks ──────────────────────────────────────────────────

    def _on_work_deadline(self, generation: int) -> None:
        with self._lock:
            if not self._is_current(generation):
                return
            s = self.session
            s.awaiting_confirmation = True
            timeout_due = self.now() + timedelta(minutes=self.confirmation_timeout_minutes)
            self._arm(timeout_due, self._on_confirmation_timeout)
            self._confirmation = self.prompts.ask(
                Prompt(
                    kind=WORK_COMPLETE,
                    message=(f"Work period complete! You've worked for "
                             f"{s.model.work_duration:g} minutes."),
                    choices=(ACCEPT_REST, self.snooze_choice),
                    payload={"model_id": s.model.id, "cycle": s.current_cycle},
                ),
                partial(self._on_confirmation, self._armed_generation),
            )

    def _on_confirmation(self, generation: int, choice: str) -> None:
        with self._lock:
            if not self._is_current(generation):
                logger.info("Ignoring answer %r to a superseded prompt.", choice)
                return
            self._confirmation = None
            if choice == ACCEPT_REST:
                self._start_rest()
            else:
                s = self.session
                s.awaiting_confirmation = False
                s.end_time = self.now() + timedelta(minutes=self.snooze_minutes)
                self._arm(s.end_time, self._on_work_deadline)
                logger.info("Work extended by %g min.", self.snooze_minutes)

    def _on_confirmation_timeout(self, generation: int) -> None:
        with self._lock:
            if not self._is_current(generation):
                return
            logger.info("No answer after %g min; starting rest automatically.",
                        self.confirmation_timeout_minutes)
            self._withdraw_confirmation()
            self._start_rest()

    def _on_rest_deadline(self, generation: int) -> None:
        with self._lock:
            if not self._is_current(generation):
                return
            s = self.session
            m = s.model
            now = self.now()

            if not m.cycles:
                # Open-ended model: every work+rest cycle is its own outcome.
                self._emit_segment(now, planned_minutes(m, 0))
                s.current_cycle += 1
            elif self.repeat_after_long_rest and s.current_cycle >= m.cycles:
                self._emit_segment(now, planned_minutes(m, m.cycles))
                s.current_cycle = 1
            else:
                s.current_cycle += 1
                if s.current_cycle > m.cycles:
                    self._complete(now)
                    return

            self._start_work()
            logger.info("Rest complete; work period %d/%s.", s.current_cycle, m.cycles or "∞")
            self.events.rest_ended.emit(m.id, s.current_cycle)

    # ── Outcomes ────────────────────────────────────────────────────────────

    def _emit_segment(self, now: datetime, planned: float) -> None:
        started = self._segment_started_at or self.session.start_time
        elapsed = _minutes(now - started)
        rate = min(1.0, elapsed / planned) if planned > 0 else 1.0
        self._segment_started_at = now
        self.events.segment_completed.emit(self.session.model.id, elapsed, rate)

    def _complete(self, now: datetime) -> None:
        s = self.session
        elapsed = _minutes(now - s.start_time)
        planned = planned_minutes(s.model, s.total_cycles)
        rate = min(1.0, elapsed / planned) if planned > 0 else 1.0
        self._disarm()
        logger.info("%s session complete after %d cycles (%.0f min, completion %.2f).",
                    s.model.name, s.total_cycles, elapsed, rate)
        # Listeners still see the finished session while the signal runs
        self.events.session_completed.emit(s.model.id, elapsed, rate)
        if self.session is s:
            self.session = None
            self._segment_started_at = None

    # ── Helpers ─────────────────────────────────────────────────────────────

    def _arm(self, due: datetime, handler: Callable[[int], None]) -> None:
        self._armed_generation = self.scheduler.arm(due, handler)

    def _disarm(self) -> None:
        self.scheduler.cancel()
        self._armed_generation = None

    def _is_current(self, generation: int) -> bool:
        return self.session is not None and generation == self._armed_generation

    def _withdraw_confirmation(self) -> None:
        if self._confirmation is not None:
            self.prompts.discard(self._confirmation)
            self._confirmation = None


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   The state machine behind the timer. Starts sessions, moves them from work
#   to rest and back on absolute deadlines, asks the user before every rest,
#   and announces outcomes on the event bus.
#
# Data flow:
#   start(model) → arm(work end) → deadline → prompt "Take Break Now / Snooze"
#   → answer (or timeout) → arm(rest end) → deadline → next cycle or
#   session_completed(model_id, elapsed, completion_rate) → PerformanceRecorder.
