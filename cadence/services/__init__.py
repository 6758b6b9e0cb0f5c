from .events import SessionEvents
from .prompts import Prompt, PromptChannel
from .scheduler import DeadlineScheduler, ManualScheduler, QtScheduler
from .session_clock import SessionClock

__all__ = [
    "DeadlineScheduler", "ManualScheduler", "Prompt", "PromptChannel",
    "QtScheduler", "SessionClock", "SessionEvents",
]
