"""User-editable automation settings, persisted as a JSON file."""

from __future__ import annotations

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Callable

from pydantic import BaseModel, ValidationError, model_validator

logger = logging.getLogger(__name__)


class AnalysisSchedule(str, Enum):
    MANUAL = "manual"          # only when the operator presses "run"
    IMMEDIATE = "immediate"    # once, as soon as the setting is applied
    DELAYED = "delayed"        # every `analysis_delay` minutes
    SCHEDULED = "scheduled"    # fixed hours; selectable but has no automation behaviour


ANALYSIS_DELAYS = (2, 5, 10, 15, 30)
BATCH_SIZES = (10, 25, 50, 100)
SYNC_INTERVALS = (5, 15, 30, 60)


class AutomationSettings(BaseModel):
    auto_analysis: bool = False
    analysis_schedule: AnalysisSchedule = AnalysisSchedule.MANUAL
    analysis_delay: int = 5
    batch_size: int = 10
    auto_sync: bool = False
    sync_interval: int = 15

    @model_validator(mode="after")
    def check_options(self):
        for field, options in (
            ("analysis_delay", ANALYSIS_DELAYS),
            ("batch_size", BATCH_SIZES),
            ("sync_interval", SYNC_INTERVALS),
        ):
            if getattr(self, field) not in options:
                raise ValueError(f"{field} must be one of {list(options)}, got {getattr(self, field)}")
        return self


SettingsListener = Callable[[AutomationSettings], None]


class SettingsStore:
    """Load, update and watch AutomationSettings.

    Saved values are merged over the defaults on every load, so fields added
    later pick up their default.  Listeners are called synchronously after
    every successful update, in subscription order.
    """

    def __init__(self, path: str | Path = "automation_settings.json"):
        self._path = Path(path)
        self._listeners: list[SettingsListener] = []
        self._current = self.load()

    @property
    def current(self) -> AutomationSettings:
        return self._current

    def load(self) -> AutomationSettings:
        if not self._path.exists():
            return AutomationSettings()
        try:
            saved = json.loads(self._path.read_text(encoding="utf-8"))
            return AutomationSettings(**{**AutomationSettings().model_dump(), **saved})
        except (OSError, ValueError, TypeError, ValidationError) as e:
            logger.error("Could not load settings, using defaults", extra={"path": str(self._path), "error": str(e)})
            return AutomationSettings()

    def update(self, **changes: Any) -> AutomationSettings:
        """Validate *changes* on top of the current settings, save and notify.

        Raises pydantic.ValidationError (nothing is saved) if the result is invalid.
        """
        unknown = set(changes) - set(AutomationSettings.model_fields)
        if unknown:
            raise KeyError(f"Unknown setting(s): {sorted(unknown)}")
        updated = AutomationSettings(**{**self._current.model_dump(), **changes})
        self._write(updated)
        return self._current

    def reset(self) -> AutomationSettings:
        self._path.unlink(missing_ok=True)
        self._set(AutomationSettings())
        logger.info("Settings reset to defaults")
        return self._current

    def export_json(self) -> str:
        return self._current.model_dump_json(indent=2)

    def import_json(self, raw: str) -> AutomationSettings:
        return self.update(**json.loads(raw))

    def subscribe(self, listener: SettingsListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: SettingsListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    # ── Internal ─────────────────────────────────────────────────────────────

    def _write(self, settings: AutomationSettings) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(settings.model_dump_json(indent=2), encoding="utf-8")
        logger.info("Settings saved", extra={"path": str(self._path)})
        self._set(settings)

    def _set(self, settings: AutomationSettings) -> None:
        self._current = settings
        for listener in list(self._listeners):
            listener(settings)
