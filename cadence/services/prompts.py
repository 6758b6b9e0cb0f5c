"""
Prompt Channel — fire-and-forget questions to the user.

The engine never waits for an answer. It hands a Prompt and a callback to
the channel and carries on; whoever presents prompts (a UI, a tray icon, a
test) later calls answer(). A prompt that is never answered simply stays
pending until it is superseded or dismissed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from PySide6.QtCore import QObject, Signal

from cadence.errors import InvalidChoiceError

logger = logging.getLogger(__name__)

# Prompt kinds
WORK_COMPLETE = "work_complete"
AUTO_SWITCH = "auto_switch"
TIME_SUGGESTION = "time_suggestion"
WORK_TYPE_SUGGESTION = "work_type_suggestion"

AnswerCallback = Callable[[str], None]


@dataclass
class Prompt:
    kind: str
    message: str
    choices: Tuple[str, ...]
    payload: Dict = field(default_factory=dict)
    id: int = 0


class PromptChannel(QObject):
    """Queue of open prompts. `prompt_raised` lets a UI pop a dialog."""

    prompt_raised = Signal(object)

    def __init__(self) -> None:
        super().__init__()
        self._next_id = 1
        self._pending: Dict[int, Tuple[Prompt, AnswerCallback]] = {}

    def ask(self, prompt: Prompt, on_answer: AnswerCallback) -> Prompt:
        prompt.id = self._next_id
        self._next_id += 1
        self._pending[prompt.id] = (prompt, on_answer)
        logger.info("Prompt %d (%s): %s %s", prompt.id, prompt.kind,
                    prompt.message.splitlines()[0] if prompt.message else "", list(prompt.choices))
        self.prompt_raised.emit(prompt)
        return prompt

    def pending(self, kind: Optional[str] = None) -> List[Prompt]:
        return [p for p, _ in self._pending.values() if kind is None or p.kind == kind]

    def latest(self, kind: Optional[str] = None) -> Optional[Prompt]:
        prompts = self.pending(kind)
        return prompts[-1] if prompts else None

    def answer(self, choice: str, prompt: Optional[Prompt] = None) -> None:
        """Deliver a choice for `prompt` (default: the most recent prompt)."""
        prompt = prompt or self.latest()
        if prompt is None or prompt.id not in self._pending:
            logger.warning("No open prompt to answer with %r", choice)
            return
        if choice not in prompt.choices:
            raise InvalidChoiceError(f"{choice!r} is not one of {list(prompt.choices)}")
        _, on_answer = self._pending.pop(prompt.id)
        logger.info("Prompt %d answered: %s", prompt.id, choice)
        on_answer(choice)

    def discard(self, prompt: Prompt) -> None:
        """Withdraw one prompt; a later answer to it is ignored."""
        self._pending.pop(prompt.id, None)

    def dismiss(self, kind: Optional[str] = None) -> None:
        """Drop open prompts without answering them."""
        for pid in [pid for pid, (p, _) in self._pending.items() if kind is None or p.kind == kind]:
            del self._pending[pid]
