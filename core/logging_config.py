"""Logging setup: plain or JSON lines, with run_id propagation via contextvars."""

from __future__ import annotations

import contextvars
import json
import logging
import sys
from datetime import datetime, timezone

# Bound for the duration of one scheduled job run; follows the task it was set in
_run_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "run_id", default="-"
)

# Fields that belong to LogRecord itself; stripped from the "extra" dump
_STDLIB_FIELDS = frozenset({
    "name", "msg", "args", "levelname", "levelno", "pathname", "filename",
    "module", "exc_info", "exc_text", "stack_info", "lineno", "funcName",
    "created", "msecs", "relativeCreated", "thread", "threadName",
    "processName", "process", "message", "taskName", "run_id",
})

_TEXT_FORMAT = "%(levelname)s  %(name)s  [%(run_id)s]  %(message)s"


class RunIdFilter(logging.Filter):
    """Stamp the current run_id onto every record passing through a handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = _run_id_var.get()
        return True


class JsonFormatter(logging.Formatter):
    """Emit one compact JSON object per log line."""

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()
        data: dict = {
            "ts":     datetime.fromtimestamp(record.created, tz=timezone.utc)
                      .strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level":  record.levelname,
            "logger": record.name,
            "msg":    record.message,
            "run_id": getattr(record, "run_id", None) or _run_id_var.get(),
        }
        for key, val in record.__dict__.items():
            if key not in _STDLIB_FIELDS and not key.startswith("_"):
                data[key] = val

        if record.exc_info:
            data["exc"] = self.formatException(record.exc_info)

        return json.dumps(data, default=str, ensure_ascii=False)


def setup_logging(level: str = "INFO", json_output: bool = False) -> None:
    """Replace the root logger's handlers with a single stdout handler."""
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RunIdFilter())
    handler.setFormatter(JsonFormatter() if json_output else logging.Formatter(_TEXT_FORMAT))
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    # APScheduler logs every job submission at INFO
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def set_run_id(run_id: str) -> contextvars.Token:
    """Bind a run_id to the current async context."""
    return _run_id_var.set(run_id)


def reset_run_id(token: contextvars.Token) -> None:
    _run_id_var.reset(token)


def get_run_id() -> str:
    return _run_id_var.get()
