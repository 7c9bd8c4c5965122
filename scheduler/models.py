"""Scheduler data models."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ScheduleMode(str, Enum):
    MANUAL = "manual"
    IMMEDIATE = "immediate"
    DELAYED = "delayed"


class SchedulerState(str, Enum):
    IDLE = "idle"
    ARMED = "armed"
    FIRED_ONCE = "fired_once"


class ScheduleConfig(BaseModel):
    """Declarative automation settings for one scheduler.

    Frozen: every change is a new object, so equality is the reconfiguration test.
    """

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    mode: ScheduleMode = ScheduleMode.MANUAL
    # Not validated here; <= 0 degrades the scheduler to idle instead of raising
    interval_minutes: int = 1
    job_parameter: Any = None


class JobTrigger(str, Enum):
    TIMER = "timer"
    IMMEDIATE = "immediate"
    MANUAL = "manual"


class JobRunStatus(str, Enum):
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


class JobRun(BaseModel):
    run_id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    automation: str
    trigger: JobTrigger
    status: JobRunStatus = JobRunStatus.RUNNING
    parameter: Any = None
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None
    error: str | None = None

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at and self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None


class SchedulerStatus(BaseModel):
    """Point-in-time view of a scheduler, for display."""

    name: str
    state: SchedulerState
    is_active: bool
    is_running: bool
    config: ScheduleConfig | None = None
    next_run_at: datetime | None = None
    last_run_at: datetime | None = None
