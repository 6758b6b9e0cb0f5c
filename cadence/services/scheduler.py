"""
Deadline Scheduler — owns the one armed phase deadline and the recurring ticks.

Every call to arm() cancels whatever deadline was armed before and bumps the
generation id. Callbacks receive the generation they were armed with, and a
callback whose generation has been superseded is dropped, so a stale timer
can never fire against a newer session.

Two implementations:
  - QtScheduler: QTimer based, runs on the Qt event loop.
  - ManualScheduler: time only moves when advance() is called. Used by the
    tests.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from PySide6.QtCore import QTimer

logger = logging.getLogger(__name__)

DeadlineCallback = Callable[[int], None]
TickCallback = Callable[[], None]


class DeadlineScheduler:
    """Base class: generation bookkeeping shared by both implementations."""

    def __init__(self) -> None:
        self._generation = 0
        self._next_tick_id = 1

    # ── Public API ──────────────────────────────────────────────────────────

    @property
    def generation(self) -> int:
        return self._generation

    def now(self) -> datetime:
        raise NotImplementedError

    def arm(self, due: datetime, callback: DeadlineCallback) -> int:
        """Replace the armed deadline. Returns the new generation id."""
        self.cancel()
        self._install(due, self._generation, callback)
        logger.debug("Deadline armed for %s (generation %d)", due, self._generation)
        return self._generation

    def cancel(self) -> None:
        """Disarm the current deadline; any in-flight callback becomes stale."""
        self._generation += 1
        self._uninstall()

    def is_armed(self) -> bool:
        raise NotImplementedError

    def every(self, minutes: float, callback: TickCallback) -> int:
        """Run callback every `minutes` until cancel_tick(). Returns a tick id."""
        tick_id = self._next_tick_id
        self._next_tick_id += 1
        self._install_tick(tick_id, timedelta(minutes=minutes), callback)
        return tick_id

    def cancel_tick(self, tick_id: int) -> None:
        self._uninstall_tick(tick_id)

    # ── Hooks ───────────────────────────────────────────────────────────────

    def _install(self, due: datetime, generation: int, callback: DeadlineCallback) -> None:
        raise NotImplementedError

    def _uninstall(self) -> None:
        raise NotImplementedError

    def _install_tick(self, tick_id: int, interval: timedelta, callback: TickCallback) -> None:
        raise NotImplementedError

    def _uninstall_tick(self, tick_id: int) -> None:
        raise NotImplementedError

    def _dispatch(self, generation: int, callback: DeadlineCallback) -> None:
        if generation != self._generation:
            logger.debug("Dropping stale deadline (generation %d, current %d)",
                         generation, self._generation)
            return
        callback(generation)


class QtScheduler(DeadlineScheduler):
    """Runs deadlines and ticks as QTimers on the Qt event loop."""

    def __init__(self, clock: Callable[[], datetime] = datetime.now) -> None:
        super().__init__()
        self._clock = clock
        self._timer = QTimer()
        self._timer.setSingleShot(True)
        self._timer.timeout.connect(self._on_timeout)
        self._pending: Optional[Tuple[datetime, int, DeadlineCallback]] = None
        self._ticks: Dict[int, QTimer] = {}

    def now(self) -> datetime:
        return self._clock()

    def is_armed(self) -> bool:
        return self._pending is not None

    def _install(self, due: datetime, generation: int, callback: DeadlineCallback) -> None:
        self._pending = (due, generation, callback)
        self._start_for(due)

    def _uninstall(self) -> None:
        self._timer.stop()
        self._pending = None

    def _start_for(self, due: datetime) -> None:
        delay_ms = max(0, int((due - self.now()).total_seconds() * 1000))
        self._timer.start(delay_ms)

    def _on_timeout(self) -> None:
        if self._pending is None:
            return
        due, generation, callback = self._pending
        # QTimer measures monotonic time; wall-clock deadlines are the source
        # of truth, so fire only once the deadline has really passed.
        if self.now() < due:
            self._start_for(due)
            return
        self._pending = None
        self._dispatch(generation, callback)

    def _install_tick(self, tick_id: int, interval: timedelta, callback: TickCallback) -> None:
        timer = QTimer()
        timer.timeout.connect(callback)
        timer.start(int(interval.total_seconds() * 1000))
        self._ticks[tick_id] = timer

    def _uninstall_tick(self, tick_id: int) -> None:
        timer = self._ticks.pop(tick_id, None)
        if timer is not None:
            timer.stop()


class ManualScheduler(DeadlineScheduler):
    """A scheduler whose clock only moves when advance() is called."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        super().__init__()
        self._now = start or datetime(2024, 3, 4, 9, 0)
        self._pending: Optional[Tuple[datetime, int, DeadlineCallback]] = None
        self._ticks: Dict[int, List] = {}   # id -> [interval, next_due, callback]

    def now(self) -> datetime:
        return self._now

    def is_armed(self) -> bool:
        return self._pending is not None

    @property
    def pending_due(self) -> Optional[datetime]:
        return self._pending[0] if self._pending else None

    def advance(self, minutes: float = 0, seconds: float = 0) -> None:
        """Move time forward, firing due deadlines and ticks in order."""
        self.advance_to(self._now + timedelta(minutes=minutes, seconds=seconds))

    def advance_to(self, target: datetime) -> None:
        while True:
            nxt = self._next_due(target)
            if nxt is None:
                break
            due, tick_id = nxt
            self._now = max(self._now, due)
            if tick_id is None:
                _, generation, callback = self._pending
                self._pending = None
                self._dispatch(generation, callback)
            else:
                tick = self._ticks[tick_id]
                tick[1] = due + tick[0]
                tick[2]()
        self._now = max(self._now, target)

    def _next_due(self, target: datetime) -> Optional[Tuple[datetime, Optional[int]]]:
        best: Optional[Tuple[datetime, Optional[int]]] = None
        if self._pending is not None and self._pending[0] <= target:
            best = (self._pending[0], None)
        for tick_id, (_, due, _) in self._ticks.items():
            if due <= target and (best is None or due < best[0]):
                best = (due, tick_id)
        return best

    def _install(self, due: datetime, generation: int, callback: DeadlineCallback) -> None:
        self._pending = (due, generation, callback)

    def _uninstall(self) -> None:
        self._pending = None

    def _install_tick(self, tick_id: int, interval: timedelta, callback: TickCallback) -> None:
        self._ticks[tick_id] = [interval, self._now + interval, callback]

    def _uninstall_tick(self, tick_id: int) -> None:
        self._ticks.pop(tick_id, None)
