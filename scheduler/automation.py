"""Automation host — binds AutomationSettings to the analysis and sync schedulers."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from core.settings import AnalysisSchedule, AutomationSettings, SettingsStore
from scheduler.models import ScheduleConfig, ScheduleMode, SchedulerStatus
from scheduler.recurring import Job, RecurringTaskScheduler

if TYPE_CHECKING:
    from core.notifications import Notifier
    from store.run_store import JobRunStore

logger = logging.getLogger(__name__)

ANALYSIS = "analysis"
SYNC = "sync"

_SCHEDULE_MODES = {
    AnalysisSchedule.MANUAL:    ScheduleMode.MANUAL,
    AnalysisSchedule.IMMEDIATE: ScheduleMode.IMMEDIATE,
    AnalysisSchedule.DELAYED:   ScheduleMode.DELAYED,
    AnalysisSchedule.SCHEDULED: ScheduleMode.MANUAL,
}

# Operator-facing toasts (Persian UI)
_MESSAGES = {
    ANALYSIS: ("تحلیل خودکار {job_parameter} مطلب انجام شد", "خطا در تحلیل خودکار"),
    SYNC:     ("همگام‌سازی خودکار انجام شد", "خطا در همگام‌سازی خودکار"),
}


def analysis_config(settings: AutomationSettings) -> ScheduleConfig:
    return ScheduleConfig(
        enabled=settings.auto_analysis,
        mode=_SCHEDULE_MODES[settings.analysis_schedule],
        interval_minutes=settings.analysis_delay,
        job_parameter=settings.batch_size,
    )


def sync_config(settings: AutomationSettings) -> ScheduleConfig:
    # Sync has no manual / immediate distinction: on means "every N minutes"
    return ScheduleConfig(
        enabled=settings.auto_sync,
        mode=ScheduleMode.DELAYED,
        interval_minutes=settings.sync_interval,
    )


class AutomationHost:
    """Owns one scheduler per automation and reconfigures them on settings changes."""

    def __init__(
        self,
        settings_store: SettingsStore,
        analysis_job: Job,
        sync_job: Job,
        notifier: Notifier | None = None,
        run_store: JobRunStore | None = None,
        time_unit_seconds: float = 60.0,
        clock: Callable[[], datetime] | None = None,
    ):
        self._settings = settings_store
        self._aps = AsyncIOScheduler()
        self._jobs: dict[str, Job] = {ANALYSIS: analysis_job, SYNC: sync_job}
        self._config_for: dict[str, Callable[[AutomationSettings], ScheduleConfig]] = {
            ANALYSIS: analysis_config,
            SYNC: sync_config,
        }
        self._schedulers: dict[str, RecurringTaskScheduler] = {}
        for name in (ANALYSIS, SYNC):
            success, failure = _MESSAGES[name]
            self._schedulers[name] = RecurringTaskScheduler(
                name,
                aps=self._aps,
                notifier=notifier,
                run_store=run_store,
                success_message=success,
                failure_message=failure,
                record_last_run=(name == SYNC),
                time_unit_seconds=time_unit_seconds,
                clock=clock,
            )
        self._started = False

    # ── Lifecycle ────────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Start the timer loop and apply the current settings."""
        if self._started:
            return
        self._aps.start()
        self._settings.subscribe(self.apply)
        self._started = True
        self.apply(self._settings.current)
        logger.info("AutomationHost started")

    async def shutdown(self) -> None:
        if not self._started:
            return
        self._settings.unsubscribe(self.apply)
        for sched in self._schedulers.values():
            await sched.shutdown()
        if self._aps.running:
            self._aps.shutdown(wait=False)
        self._started = False
        logger.info("AutomationHost stopped")

    # ── Operations ───────────────────────────────────────────────────────────

    @property
    def names(self) -> list[str]:
        return list(self._schedulers)

    def apply(self, settings: AutomationSettings) -> None:
        """Reconfigure every scheduler from *settings* (unchanged configs are no-ops)."""
        for name, sched in self._schedulers.items():
            sched.configure(self._config_for[name](settings), self._jobs[name])

    def get(self, name: str) -> RecurringTaskScheduler:
        """Raises KeyError for an unknown automation name."""
        if name not in self._schedulers:
            raise KeyError(f"Automation '{name}' not found. Known: {self.names}")
        return self._schedulers[name]

    def status(self, name: str) -> SchedulerStatus:
        return self.get(name).status()

    def statuses(self) -> list[SchedulerStatus]:
        return [s.status() for s in self._schedulers.values()]

    def trigger(self, name: str) -> bool:
        """Run *name* now. False if a run is already in progress."""
        return self.get(name).trigger()
