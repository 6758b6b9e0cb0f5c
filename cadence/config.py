"""
Application configuration — a small JSON file merged over defaults.

Holds the startup work/rest model id (written back on every executed model
switch) and the tunables of the clock and the switcher.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "cadence.json"

DEFAULT_CONFIG = {
    "work_rest_model": None,
    "snooze_minutes": 5,
    "confirmation_timeout_minutes": 2,
    "repeat_after_long_rest": False,
    "auto_switching": True,
    "evaluation_interval_minutes": 10,
    "realtime_interval_minutes": 5,
    "federated_consent": False,
}


class AppConfig:
    """JSON-backed settings with defaults for every key."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = path or CONFIG_PATH
        self.values = self._load()

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, DEFAULT_CONFIG.get(key, default))

    def set(self, key: str, value: Any) -> None:
        self.values[key] = value
        self.save()

    @property
    def startup_model_id(self) -> Optional[str]:
        return self.values.get("work_rest_model")

    def remember_model(self, model_id: str) -> None:
        """Store the last confirmed model so the next launch starts with it."""
        self.set("work_rest_model", model_id)

    def save(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w") as f:
                json.dump(self.values, f, indent=2)
        except OSError as exc:
            logger.warning("Could not write config to %s: %s", self.path, exc)

    def reset(self) -> None:
        self.values = DEFAULT_CONFIG.copy()
        self.save()

    def _load(self) -> dict:
        merged = DEFAULT_CONFIG.copy()
        if self.path.exists():
            try:
                with open(self.path) as f:
                    cfg = json.load(f)
                if isinstance(cfg, dict):
                    merged.update(cfg)
            except (OSError, json.JSONDecodeError) as exc:
                logger.warning("Config at %s unreadable, using defaults: %s", self.path, exc)
        return merged
