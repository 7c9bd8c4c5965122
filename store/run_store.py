"""JobRunStore — SQLite-backed history of automation runs."""

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import create_async_engine

from scheduler.models import JobRun

# ── Schema ───────────────────────────────────────────────────────────────────

_metadata = sa.MetaData()

_runs = sa.Table(
    "job_runs",
    _metadata,
    sa.Column("run_id",     sa.String, primary_key=True),
    sa.Column("automation", sa.String, nullable=False, index=True),
    sa.Column("status",     sa.String, nullable=False),
    sa.Column("started_at", sa.String, nullable=False, index=True),
    sa.Column("run_json",   sa.Text,   nullable=False),   # full Pydantic JSON
)


# ── Store ────────────────────────────────────────────────────────────────────

class JobRunStore:
    """Persist and query JobRun records via SQLite."""

    def __init__(self, db_url: str = "sqlite+aiosqlite:///job_runs.db"):
        self._engine = create_async_engine(db_url, echo=False)

    async def init(self) -> None:
        """Create tables if they don't exist. Call once at startup."""
        async with self._engine.begin() as conn:
            await conn.run_sync(_metadata.create_all)

    async def close(self) -> None:
        await self._engine.dispose()

    async def save(self, run: JobRun) -> None:
        """Insert or update a run (upsert on run_id)."""
        row = {
            "run_id":     run.run_id,
            "automation": run.automation,
            "status":     run.status.value,
            "started_at": _iso(run.started_at),
            "run_json":   run.model_dump_json(),
        }
        async with self._engine.begin() as conn:
            await conn.execute(
                sqlite_insert(_runs)
                .values(**row)
                .on_conflict_do_update(
                    index_elements=["run_id"],
                    set_={k: row[k] for k in ("status", "run_json")},
                )
            )

    async def load(self, run_id: str) -> JobRun:
        """Load a run by ID. Raises KeyError if not found."""
        async with self._engine.connect() as conn:
            row = (await conn.execute(
                sa.select(_runs.c.run_json).where(_runs.c.run_id == run_id)
            )).fetchone()
        if row is None:
            raise KeyError(f"Job run '{run_id}' not found")
        return JobRun.model_validate_json(row.run_json)

    async def list_recent(self, automation: str | None = None, limit: int = 50) -> list[JobRun]:
        """Return runs newest first, optionally for one automation."""
        query = sa.select(_runs.c.run_json)
        if automation:
            query = query.where(_runs.c.automation == automation)
        query = query.order_by(_runs.c.started_at.desc()).limit(limit)

        async with self._engine.connect() as conn:
            rows = (await conn.execute(query)).fetchall()
        return [JobRun.model_validate_json(r.run_json) for r in rows]


def _iso(ts: datetime) -> str:
    return ts.isoformat()
