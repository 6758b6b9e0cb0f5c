"""
Session event bus.

The clock announces what happened; the performance recorder, the switcher
and any UI subscribe. Nobody imports the clock just to hear about a break.
"""

from __future__ import annotations

from PySide6.QtCore import QObject, Signal


class SessionEvents(QObject):
    """Qt signals emitted over the life of a work/rest session."""

    # model_id
    session_started = Signal(str)
    # model_id, is_long_rest, rest_minutes
    break_taken = Signal(str, bool, float)
    # model_id, cycle about to be worked
    rest_ended = Signal(str, int)
    # exercise name (emitted by break-time exercise collaborators)
    exercise_completed = Signal(str)
    # model_id, elapsed_minutes, completion_rate
    segment_completed = Signal(str, float, float)
    session_completed = Signal(str, float, float)
    # model_id
    session_stopped = Signal(str)
    # previous model_id, new model_id
    model_switched = Signal(str, str)
