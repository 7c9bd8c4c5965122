"""FastAPI service layer for the automation scheduler."""

import asyncio
import json
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from api.models import JobRunResponse, SettingsUpdate, TriggerResponse
from core.config import ServiceConfig
from core.event_bus import ALL_SOURCES, EventBus
from core.notifications import EventBusNotifier
from core.settings import AutomationSettings, SettingsStore
from jobs.functions import FunctionsClient, make_analysis_job, make_sync_job
from scheduler.automation import AutomationHost
from scheduler.models import JobRun, SchedulerStatus
from store.run_store import JobRunStore

logger = logging.getLogger(__name__)

# ── Singletons ────────────────────────────────────────────────────────────────
# Built at import time so tests can swap them before the lifespan runs.

_config = ServiceConfig.from_env()
_settings_store = SettingsStore(_config.settings_path)
_run_store = JobRunStore(_config.runs_db_url)
_event_bus = EventBus()
_functions = FunctionsClient(_config.functions_url, _config.functions_key)


def build_host(
    settings_store: SettingsStore,
    run_store: JobRunStore,
    event_bus: EventBus,
    functions: FunctionsClient,
    config: ServiceConfig,
) -> AutomationHost:
    return AutomationHost(
        settings_store,
        analysis_job=make_analysis_job(functions, config.analysis_function),
        sync_job=make_sync_job(functions, config.sync_function),
        notifier=EventBusNotifier(event_bus),
        run_store=run_store,
        time_unit_seconds=config.time_unit_seconds,
    )


_host = build_host(_settings_store, _run_store, _event_bus, _functions, _config)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await _run_store.init()
    await _host.start()
    yield
    await _host.shutdown()
    await _run_store.close()


app = FastAPI(
    title="Automation API",
    description="Scheduled analysis and sync automation for the monitoring dashboard.",
    version="0.1.0",
    lifespan=lifespan,
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _run_response(run: JobRun) -> JobRunResponse:
    return JobRunResponse(
        run_id=run.run_id,
        automation=run.automation,
        trigger=run.trigger.value,
        status=run.status.value,
        parameter=run.parameter,
        started_at=run.started_at,
        finished_at=run.finished_at,
        duration_seconds=run.duration_seconds,
        error=run.error,
    )


def _automation_or_404(name: str):
    try:
        return _host.get(name)
    except KeyError:
        raise HTTPException(404, detail=f"Automation '{name}' not found")


# ── Routes ────────────────────────────────────────────────────────────────────

@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/settings", response_model=AutomationSettings)
async def get_settings():
    return _settings_store.current


@app.patch("/settings", response_model=AutomationSettings)
async def update_settings(req: SettingsUpdate):
    """Apply a partial settings update; automations are reconfigured immediately."""
    try:
        return _settings_store.update(**req.model_dump(exclude_none=True))
    except ValidationError as e:
        raise HTTPException(422, detail=json.loads(e.json()))


@app.post("/settings/reset", response_model=AutomationSettings)
async def reset_settings():
    return _settings_store.reset()


@app.get("/automations", response_model=list[SchedulerStatus])
async def list_automations():
    return _host.statuses()


@app.get("/automations/{name}", response_model=SchedulerStatus)
async def get_automation(name: str):
    return _automation_or_404(name).status()


@app.post("/automations/{name}/run", response_model=TriggerResponse, status_code=202)
async def run_automation(name: str):
    """Start a run now. 409 if one is already in progress."""
    sched = _automation_or_404(name)
    try:
        accepted = sched.trigger()
    except RuntimeError as e:
        raise HTTPException(409, detail=str(e))
    if not accepted:
        raise HTTPException(409, detail=f"Automation '{name}' is already running")
    return TriggerResponse(automation=name, accepted=True)


@app.get("/automations/{name}/runs", response_model=list[JobRunResponse])
async def list_runs(name: str, limit: int = 50):
    _automation_or_404(name)
    return [_run_response(r) for r in await _run_store.list_recent(name, limit=limit)]


_SSE_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}


@app.get("/notifications/stream")
async def stream_notifications(source: str = ALL_SOURCES):
    """Stream automation notifications as Server-Sent Events.

    Each event is a JSON-encoded notification on a ``data:`` line.  A
    comment line (``: heartbeat``) is sent every 30 s to keep the
    connection alive.
    """
    if source != ALL_SOURCES:
        _automation_or_404(source)

    async def generator():
        q = _event_bus.subscribe(source)
        try:
            while True:
                try:
                    event = await asyncio.wait_for(q.get(), timeout=30.0)
                    yield f"data: {json.dumps(event, ensure_ascii=False)}\n\n"
                except asyncio.TimeoutError:
                    yield ": heartbeat\n\n"
        except asyncio.CancelledError:
            pass
        finally:
            _event_bus.unsubscribe(source, q)

    return StreamingResponse(generator(), media_type="text/event-stream", headers=_SSE_HEADERS)
