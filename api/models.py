"""API request and response models."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

from core.settings import AnalysisSchedule


class SettingsUpdate(BaseModel):
    """Partial update: only the fields that are set are applied."""

    model_config = ConfigDict(extra="forbid")

    auto_analysis: bool | None = None
    analysis_schedule: AnalysisSchedule | None = None
    analysis_delay: int | None = None
    batch_size: int | None = None
    auto_sync: bool | None = None
    sync_interval: int | None = None


class TriggerResponse(BaseModel):
    automation: str
    accepted: bool


class JobRunResponse(BaseModel):
    run_id: str
    automation: str
    trigger: str
    status: str
    parameter: Any = None
    started_at: datetime
    finished_at: datetime | None = None
    duration_seconds: float | None = None
    error: str | None = None
