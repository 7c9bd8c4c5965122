"""Automation CLI — inspect and drive a running automation API server."""

from __future__ import annotations

import json
import sys

import click
import httpx
import yaml
from rich import box
from rich.console import Console
from rich.table import Table

console = Console()
err_console = Console(stderr=True)

_STATUS_COLOR: dict[str, str] = {
    "success": "green",
    "failed": "red",
    "failure": "red",
    "running": "yellow",
    "armed": "green",
    "fired_once": "blue",
    "idle": "dim",
}


# ── Internal helpers ──────────────────────────────────────────────────────────


def _color(status: str) -> str:
    return _STATUS_COLOR.get(status, "white")


def _client(url: str) -> httpx.Client:
    return httpx.Client(base_url=url.rstrip("/"), timeout=30)


def _load_file(path: str) -> dict:
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) if path.endswith((".yaml", ".yml")) else json.load(f)


def _die(msg: str, code: int = 1) -> None:
    err_console.print(f"[red]Error:[/] {msg}")
    sys.exit(code)


def _check(resp: httpx.Response) -> None:
    if resp.status_code in (404, 409):
        _die(resp.json().get("detail", "Request rejected"))
    if resp.is_error:
        _die(f"HTTP {resp.status_code}: {resp.text}")


def _parse_assignment(item: str) -> tuple[str, object]:
    if "=" not in item:
        raise click.BadParameter(f"expected KEY=VALUE, got '{item}'")
    key, raw = item.split("=", 1)
    # yaml gives us bools / ints for free: "true" -> True, "30" -> 30
    return key.strip(), yaml.safe_load(raw)


def _echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False))


# ── Root group ────────────────────────────────────────────────────────────────


@click.group()
@click.option(
    "--url", "-u",
    default="http://localhost:8000",
    envvar="AUTOMATION_URL",
    show_default=True,
    help="Automation API base URL.",
)
@click.option("--json", "json_output", is_flag=True, help="Output raw JSON.")
@click.pass_context
def cli(ctx: click.Context, url: str, json_output: bool) -> None:
    """Analysis / sync automation CLI."""
    ctx.ensure_object(dict)
    ctx.obj["url"] = url
    ctx.obj["json_output"] = json_output


# ── automation settings ───────────────────────────────────────────────────────


@cli.group("settings")
def settings() -> None:
    """Show and change automation settings."""


@settings.command("show")
@click.pass_obj
def settings_show(obj: dict) -> None:
    """Show the current settings."""
    with _client(obj["url"]) as c:
        resp = c.get("/settings")
    _check(resp)
    data = resp.json()

    if obj["json_output"]:
        _echo_json(data)
        return

    table = Table(box=box.SIMPLE)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in data.items():
        table.add_row(key, str(value))
    console.print(table)


@settings.command("set")
@click.argument("assignments", nargs=-1, required=True)
@click.pass_obj
def settings_set(obj: dict, assignments: tuple[str, ...]) -> None:
    """Update settings, e.g. ``auto_analysis=true analysis_delay=10``."""
    payload = dict(_parse_assignment(a) for a in assignments)
    with _client(obj["url"]) as c:
        resp = c.patch("/settings", json=payload)
    if resp.status_code == 422:
        _die(f"Invalid settings: {resp.text}")
    _check(resp)

    if obj["json_output"]:
        _echo_json(resp.json())
        return
    click.echo("Updated  " + ", ".join(f"{k}={v}" for k, v in payload.items()))


@settings.command("reset")
@click.pass_obj
def settings_reset(obj: dict) -> None:
    """Restore default settings."""
    with _client(obj["url"]) as c:
        resp = c.post("/settings/reset")
    _check(resp)

    if obj["json_output"]:
        _echo_json(resp.json())
        return
    click.echo("Settings reset to defaults")


@settings.command("export")
@click.pass_obj
def settings_export(obj: dict) -> None:
    """Print the settings as JSON (for backup or ``import``)."""
    with _client(obj["url"]) as c:
        resp = c.get("/settings")
    _check(resp)
    _echo_json(resp.json())


@settings.command("import")
@click.argument("file", type=click.Path(exists=True))
@click.pass_obj
def settings_import(obj: dict, file: str) -> None:
    """Apply settings from a YAML or JSON file."""
    payload = _load_file(file) or {}
    with _client(obj["url"]) as c:
        resp = c.patch("/settings", json=payload)
    if resp.status_code == 422:
        _die(f"Invalid settings: {resp.text}")
    _check(resp)
    click.echo(f"Imported {len(payload)} setting(s) from {file}")


# ── automation status ─────────────────────────────────────────────────────────


@cli.command("status")
@click.argument("name", required=False)
@click.pass_obj
def status(obj: dict, name: str | None) -> None:
    """Show scheduler state of every automation (or just NAME)."""
    with _client(obj["url"]) as c:
        resp = c.get(f"/automations/{name}" if name else "/automations")
    _check(resp)
    data = resp.json()

    if obj["json_output"]:
        _echo_json(data)
        return

    rows = [data] if name else data
    table = Table(box=box.SIMPLE)
    table.add_column("Automation", style="cyan")
    table.add_column("State")
    table.add_column("Running")
    table.add_column("Next Run")
    table.add_column("Last Run")
    for row in rows:
        state = row.get("state", "?")
        table.add_row(
            row["name"],
            f"[{_color(state)}]{state}[/]",
            "yes" if row.get("is_running") else "-",
            row.get("next_run_at") or "-",
            row.get("last_run_at") or "-",
        )
    console.print(table)


# ── automation run ────────────────────────────────────────────────────────────


@cli.command("run")
@click.argument("name")
@click.pass_obj
def run(obj: dict, name: str) -> None:
    """Start a run of NAME now."""
    with _client(obj["url"]) as c:
        resp = c.post(f"/automations/{name}/run")
    _check(resp)

    if obj["json_output"]:
        _echo_json(resp.json())
        return
    click.echo(f"Started  {name}")


# ── automation runs ───────────────────────────────────────────────────────────


@cli.command("runs")
@click.argument("name")
@click.option("--limit", default=20, show_default=True, help="Number of runs to show.")
@click.pass_obj
def runs(obj: dict, name: str, limit: int) -> None:
    """List recent runs of NAME."""
    with _client(obj["url"]) as c:
        resp = c.get(f"/automations/{name}/runs", params={"limit": limit})
    _check(resp)
    data = resp.json()

    if obj["json_output"]:
        _echo_json(data)
        return

    if not data:
        click.echo("No runs found.")
        return

    table = Table(box=box.SIMPLE)
    table.add_column("Run ID", style="cyan")
    table.add_column("Trigger")
    table.add_column("Status")
    table.add_column("Started")
    table.add_column("Duration", justify="right")
    table.add_column("Error")
    for row in data:
        s = row.get("status", "?")
        dur = f"{row['duration_seconds']:.2f}s" if row.get("duration_seconds") else "-"
        err = (row.get("error") or "")[:60]
        table.add_row(
            row["run_id"],
            row.get("trigger", "?"),
            f"[{_color(s)}]{s}[/]",
            row.get("started_at", "-"),
            dur,
            f"[red]{err}[/]" if err else "",
        )
    console.print(table)


# ── automation stream ─────────────────────────────────────────────────────────


@cli.command("stream")
@click.option("--source", default="*", show_default=True, help="Automation name, or * for all.")
@click.pass_obj
def stream(obj: dict, source: str) -> None:
    """Follow success / failure notifications (SSE)."""
    url = obj["url"].rstrip("/") + "/notifications/stream"
    try:
        with httpx.Client(timeout=None) as c:
            with c.stream("GET", url, params={"source": source}) as resp:
                if resp.status_code == 404:
                    _die(f"Automation '{source}' not found")
                resp.raise_for_status()
                for line in resp.iter_lines():
                    if not line.startswith("data: "):
                        continue
                    try:
                        event = json.loads(line[6:])
                    except json.JSONDecodeError:
                        continue
                    if obj["json_output"]:
                        click.echo(json.dumps(event, ensure_ascii=False))
                    else:
                        level = event.get("level", "?")
                        console.print(
                            f"[{_color(level)}][{level}][/] {event.get('source', '?')}: {event.get('message', '')}"
                        )
    except httpx.ConnectError:
        _die(f"Cannot connect to {obj['url']}")
    except KeyboardInterrupt:
        pass
