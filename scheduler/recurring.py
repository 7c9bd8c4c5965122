"""APScheduler-backed recurring task scheduler for automation jobs."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from core.logging_config import reset_run_id, set_run_id
from scheduler.models import (
    JobRun,
    JobRunStatus,
    JobTrigger,
    ScheduleConfig,
    ScheduleMode,
    SchedulerState,
    SchedulerStatus,
)

if TYPE_CHECKING:
    from core.notifications import Notifier
    from store.run_store import JobRunStore

logger = logging.getLogger(__name__)

Job = Callable[..., Awaitable[Any]]
HostRunningFlag = bool | Callable[[], bool]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SchedulerHandle:
    """Read-only live view of a scheduler, handed to the host by ``configure``."""

    def __init__(self, scheduler: RecurringTaskScheduler):
        self._scheduler = scheduler

    @property
    def state(self) -> SchedulerState:
        return self._scheduler._state

    @property
    def is_active(self) -> bool:
        return self._scheduler._state != SchedulerState.IDLE

    @property
    def is_running(self) -> bool:
        return self._scheduler._running

    @property
    def next_run_at(self) -> datetime | None:
        return self._scheduler._next_run_at

    @property
    def last_run_at(self) -> datetime | None:
        return self._scheduler._last_run_at

    def teardown(self) -> None:
        self._scheduler.teardown()

    def status(self) -> SchedulerStatus:
        return SchedulerStatus(
            name=self._scheduler.name,
            state=self.state,
            is_active=self.is_active,
            is_running=self.is_running,
            config=self._scheduler._config,
            next_run_at=self.next_run_at,
            last_run_at=self.last_run_at,
        )


class RecurringTaskScheduler:
    """Turns a ScheduleConfig into timer behaviour around one async job.

    At most one run of the job is in flight at a time.  Ticks that land
    while a run is in progress are dropped, not queued.  Job failures are
    logged and reported through the notifier, never raised.
    """

    def __init__(
        self,
        name: str,
        aps: AsyncIOScheduler | None = None,
        notifier: Notifier | None = None,
        run_store: JobRunStore | None = None,
        success_message: str = "{name}: run completed",
        failure_message: str = "{name}: run failed",
        record_last_run: bool = False,
        time_unit_seconds: float = 60.0,
        clock: Callable[[], datetime] | None = None,
    ):
        self.name = name
        self._aps = aps or AsyncIOScheduler()
        self._owns_aps = aps is None
        self._notifier = notifier
        self._run_store = run_store
        self._success_message = success_message
        self._failure_message = failure_message
        self._record_last_run = record_last_run
        self._time_unit = time_unit_seconds
        self._clock = clock or _utcnow

        self._config: ScheduleConfig | None = None
        self._job: Job | None = None
        self._host_running: HostRunningFlag = False
        self._state = SchedulerState.IDLE
        self._generation = 0
        self._timer_id: str | None = None
        self._running = False
        self._next_run_at: datetime | None = None
        self._last_run_at: datetime | None = None
        self._tasks: set[asyncio.Task] = set()

        self.handle = SchedulerHandle(self)

    # ── Public API ───────────────────────────────────────────────────────────

    def configure(
        self,
        config: ScheduleConfig,
        job: Job,
        is_job_running: HostRunningFlag = False,
    ) -> SchedulerHandle:
        """Apply *config*, replacing whatever was scheduled before.

        A config equal to the one already applied (with an equal job) is a
        no-op apart from refreshing *is_job_running*; Immediate mode
        therefore fires once per distinct configuration.

        *is_job_running* is the host's own view of whether an equivalent
        job is in flight: a bool, or a callable consulted on every tick.
        """
        if self._config is not None and config == self._config and job == self._job:
            self._host_running = is_job_running
            return self.handle

        self.teardown()
        self._config = config
        self._job = job
        self._host_running = is_job_running

        if not config.enabled or config.mode == ScheduleMode.MANUAL:
            logger.info(
                "Automation inactive",
                extra={"automation": self.name, "enabled": config.enabled, "mode": config.mode.value},
            )
            return self.handle

        if config.mode == ScheduleMode.IMMEDIATE:
            self._state = SchedulerState.FIRED_ONCE
            if self._is_busy():
                logger.debug("Immediate run skipped: job already running", extra={"automation": self.name})
            else:
                self._launch(JobTrigger.IMMEDIATE)
            return self.handle

        if config.interval_minutes <= 0:
            logger.warning(
                "Invalid automation interval, staying idle",
                extra={"automation": self.name, "interval_minutes": config.interval_minutes},
            )
            return self.handle

        self._arm()
        return self.handle

    def teardown(self) -> None:
        """Cancel the armed timer and reset scheduling state.

        A run already in flight is left to finish and report; it can no
        longer touch the timer or next-run time.
        """
        self._generation += 1
        if self._timer_id is not None:
            aps_job = self._aps.get_job(self._timer_id)
            if aps_job:
                aps_job.remove()
            self._timer_id = None
            logger.info("Automation timer cancelled", extra={"automation": self.name})
        self._state = SchedulerState.IDLE
        self._config = None
        self._job = None
        self._host_running = False
        self._next_run_at = None
        self._last_run_at = None

    def trigger(self) -> bool:
        """Start a run now, outside the timer.

        Returns False (and starts nothing) if a run is already in progress.
        Raises RuntimeError if no job has been configured.
        """
        if self._job is None:
            raise RuntimeError(f"Automation '{self.name}' has no job configured")
        if self._is_busy():
            logger.debug("Manual run skipped: job already running", extra={"automation": self.name})
            return False
        self._launch(JobTrigger.MANUAL)
        return True

    def status(self) -> SchedulerStatus:
        return self.handle.status()

    async def wait_idle(self) -> None:
        """Wait until every run started by this scheduler has settled."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self, wait: bool = True) -> None:
        self.teardown()
        if wait:
            await self.wait_idle()
        if self._owns_aps and self._aps.running:
            self._aps.shutdown(wait=False)

    # ── Internal ─────────────────────────────────────────────────────────────

    def _interval(self) -> timedelta:
        return timedelta(seconds=self._config.interval_minutes * self._time_unit)

    def _is_busy(self) -> bool:
        host = self._host_running() if callable(self._host_running) else self._host_running
        return self._running or bool(host)

    def _arm(self) -> None:
        if not self._aps.running:
            self._aps.start()
        self._timer_id = f"automation:{self.name}"
        self._aps.add_job(
            self._tick,
            trigger=IntervalTrigger(seconds=self._config.interval_minutes * self._time_unit),
            id=self._timer_id,
            kwargs={"generation": self._generation},
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=None,
        )
        self._state = SchedulerState.ARMED
        self._next_run_at = self._clock() + self._interval()
        logger.info(
            "Automation timer armed",
            extra={"automation": self.name, "interval_minutes": self._config.interval_minutes,
                   "next_run_at": self._next_run_at.isoformat()},
        )

    async def _tick(self, generation: int | None = None) -> None:
        """Timer callback: start a run unless one is already in flight."""
        if self._state != SchedulerState.ARMED:
            return
        if generation is not None and generation != self._generation:
            return  # dispatched before a teardown

        if self._is_busy():
            logger.debug("Tick skipped: job already running", extra={"automation": self.name})
        else:
            self._launch(JobTrigger.TIMER)
        self._next_run_at = self._clock() + self._interval()

    def _launch(self, trigger: JobTrigger) -> None:
        self._running = True
        started = self._clock()
        if self._record_last_run:
            self._last_run_at = started
        run = JobRun(
            automation=self.name,
            trigger=trigger,
            parameter=self._config.job_parameter if self._config else None,
            started_at=started,
        )
        task = asyncio.create_task(self._run_job(run, self._job, self._config))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_job(
        self,
        run: JobRun,
        job: Job,
        config: ScheduleConfig | None,
    ) -> None:
        token = set_run_id(run.run_id)
        parameter = config.job_parameter if config else None
        try:
            await self._record(run)
            logger.info(
                "Automation run started",
                extra={"automation": self.name, "trigger": run.trigger.value, "parameter": parameter},
            )
            try:
                if parameter is None:
                    await job()
                else:
                    await job(parameter)
            except Exception as e:
                run.status = JobRunStatus.FAILED
                run.error = str(e) or type(e).__name__
                logger.error(
                    "Automation run failed",
                    extra={"automation": self.name, "at": self._clock().isoformat(), "error": run.error},
                    exc_info=True,
                )
                await self._notify(False, parameter)
            else:
                run.status = JobRunStatus.SUCCESS
                logger.info("Automation run succeeded", extra={"automation": self.name})
                await self._notify(True, parameter)
        finally:
            self._running = False
            run.finished_at = self._clock()
            await self._record(run)
            reset_run_id(token)

    async def _notify(self, success: bool, parameter: Any) -> None:
        if self._notifier is None:
            return
        template = self._success_message if success else self._failure_message
        message = template.format(name=self.name, job_parameter=parameter)
        try:
            if success:
                await self._notifier.success(self.name, message)
            else:
                await self._notifier.failure(self.name, message)
        except Exception as e:
            logger.warning("Notification failed", extra={"automation": self.name, "error": str(e)})

    async def _record(self, run: JobRun) -> None:
        if self._run_store is None:
            return
        try:
            await self._run_store.save(run)
        except Exception as e:
            logger.warning(
                "Could not record job run",
                extra={"automation": self.name, "run_id": run.run_id, "error": str(e)},
            )
