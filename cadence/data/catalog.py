"""
Work/Rest Catalog — built-in, research-based interval configurations.

Each entry summarises a well-known work/rest rhythm (Pomodoro, WHO computer
work guidance). The catalog is immutable once loaded; the scheduler and the
recommendation engine only ever look models up by id.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from .models import WorkRestModel

DEFAULT_MODEL_ID = "who-45min-work-15min-rest"

# Built-in knowledge base
WORK_REST_MODELS: List[WorkRestModel] = [
    WorkRestModel(
        id="pomodoro-classic",
        name="Classic Pomodoro",
        description=(
            "25 minutes work, 5 minutes rest. After 4 cycles take a 15 minute "
            "long break. Based on Francesco Cirillo's Pomodoro Technique."
        ),
        work_duration=25,
        rest_duration=5,
        cycles=4,
        long_rest_duration=15,
        based_on="pomodoro",
    ),
    WorkRestModel(
        id="who-1hour-work-30min-rest",
        name="WHO Recommended: 1 Hour Work, 30 Min Rest",
        description=(
            "One hour of focused work followed by 30 minutes of rest to "
            "prevent musculoskeletal disorders."
        ),
        work_duration=60,
        rest_duration=30,
        based_on="who",
    ),
    WorkRestModel(
        id="who-2hour-work-1hour-rest",
        name="WHO Recommended: 2 Hours Work, 1 Hour Rest",
        description="Prolonged computer work with one hour rest periods.",
        work_duration=120,
        rest_duration=60,
        based_on="who",
    ),
    WorkRestModel(
        id=DEFAULT_MODEL_ID,
        name="WHO Recommended: 45 Min Work, 15 Min Rest",
        description=(
            "Intensive computer tasks: 45 minutes work with 15 minutes rest "
            "to prevent eye strain and mental fatigue."
        ),
        work_duration=45,
        rest_duration=15,
        based_on="who",
    ),
    WorkRestModel(
        id="who-90min-work-30min-rest",
        name="WHO Recommended: 90 Min Work, 30 Min Rest",
        description=(
            "Creative and analytical work: 90 minutes work followed by 30 "
            "minutes rest."
        ),
        work_duration=90,
        rest_duration=30,
        based_on="who",
    ),
    WorkRestModel(
        id="custom-flexible",
        name="Custom Flexible",
        description="A 50/10 rhythm to start from when customising intervals.",
        work_duration=50,
        rest_duration=10,
        based_on="custom",
    ),
]


class Catalog:
    """Read-only lookup over a list of work/rest models."""

    def __init__(self, models: Optional[Iterable[WorkRestModel]] = None) -> None:
        self._models = tuple(WORK_REST_MODELS if models is None else models)

    def list(self) -> List[WorkRestModel]:
        return list(self._models)

    def by_id(self, model_id: Optional[str]) -> Optional[WorkRestModel]:
        for m in self._models:
            if m.id == model_id:
                return m
        return None

    def default(self) -> Optional[WorkRestModel]:
        return self.by_id(DEFAULT_MODEL_ID) or (self._models[0] if self._models else None)

    def __len__(self) -> int:
        return len(self._models)

    def __bool__(self) -> bool:
        return bool(self._models)
