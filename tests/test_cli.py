"""Tests for the automation CLI."""

import json
from unittest.mock import MagicMock, patch

import httpx
import pytest
import yaml
from click.testing import CliRunner

from cli.main import cli


# ── Fixtures ──────────────────────────────────────────────────────────────────


@pytest.fixture
def runner():
    return CliRunner()


def _resp(status, data=None, text=""):
    r = MagicMock(spec=httpx.Response)
    r.status_code = status
    r.json = MagicMock(return_value=data if data is not None else {})
    r.text = text
    r.is_error = status >= 400
    return r


def _mock_client():
    mc = MagicMock()
    mc.__enter__ = MagicMock(return_value=mc)
    mc.__exit__ = MagicMock(return_value=False)
    return mc


SETTINGS = {
    "auto_analysis": False,
    "analysis_schedule": "manual",
    "analysis_delay": 5,
    "batch_size": 10,
    "auto_sync": True,
    "sync_interval": 15,
}

SYNC_STATUS = {
    "name": "sync",
    "state": "armed",
    "is_active": True,
    "is_running": False,
    "config": {"enabled": True, "mode": "delayed", "interval_minutes": 15, "job_parameter": None},
    "next_run_at": "2026-03-01T12:15:00Z",
    "last_run_at": None,
}


# ── automation --help ─────────────────────────────────────────────────────────


def test_cli_help(runner):
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    for cmd in ("settings", "status", "run", "runs", "stream"):
        assert cmd in result.output


def test_settings_help(runner):
    result = runner.invoke(cli, ["settings", "--help"])
    assert result.exit_code == 0
    for cmd in ("show", "set", "reset", "export", "import"):
        assert cmd in result.output


# ── automation settings ───────────────────────────────────────────────────────


def test_settings_show(runner):
    with patch("cli.main._client") as mock_factory:
        mc = _mock_client()
        mc.get.return_value = _resp(200, SETTINGS)
        mock_factory.return_value = mc

        result = runner.invoke(cli, ["settings", "show"])

    assert result.exit_code == 0
    assert "sync_interval" in result.output
    mc.get.assert_called_once_with("/settings")


def test_settings_set_parses_values(runner):
    with patch("cli.main._client") as mock_factory:
        mc = _mock_client()
        mc.patch.return_value = _resp(200, SETTINGS)
        mock_factory.return_value = mc

        result = runner.invoke(cli, ["settings", "set", "auto_analysis=true", "analysis_delay=10",
                                     "analysis_schedule=delayed"])

    assert result.exit_code == 0
    assert "Updated" in result.output
    mc.patch.assert_called_once_with(
        "/settings",
        json={"auto_analysis": True, "analysis_delay": 10, "analysis_schedule": "delayed"},
    )


def test_settings_set_rejects_bad_assignment(runner):
    result = runner.invoke(cli, ["settings", "set", "auto_analysis"])
    assert result.exit_code != 0
    assert "KEY=VALUE" in result.output


def test_settings_set_invalid_value(runner):
    with patch("cli.main._client") as mock_factory:
        mc = _mock_client()
        mc.patch.return_value = _resp(422, text='{"detail": "bad schedule"}')
        mock_factory.return_value = mc

        result = runner.invoke(cli, ["settings", "set", "analysis_schedule=hourly"])

    assert result.exit_code == 1


def test_settings_import_yaml(runner, tmp_path):
    p = tmp_path / "settings.yaml"
    p.write_text(yaml.dump({"auto_sync": True, "sync_interval": 60}))

    with patch("cli.main._client") as mock_factory:
        mc = _mock_client()
        mc.patch.return_value = _resp(200, SETTINGS)
        mock_factory.return_value = mc

        result = runner.invoke(cli, ["settings", "import", str(p)])

    assert result.exit_code == 0
    assert "Imported 2 setting(s)" in result.output
    mc.patch.assert_called_once_with("/settings", json={"auto_sync": True, "sync_interval": 60})


def test_settings_export_is_json(runner):
    with patch("cli.main._client") as mock_factory:
        mc = _mock_client()
        mc.get.return_value = _resp(200, SETTINGS)
        mock_factory.return_value = mc

        result = runner.invoke(cli, ["settings", "export"])

    assert result.exit_code == 0
    assert json.loads(result.output) == SETTINGS


def test_settings_reset(runner):
    with patch("cli.main._client") as mock_factory:
        mc = _mock_client()
        mc.post.return_value = _resp(200, SETTINGS)
        mock_factory.return_value = mc

        result = runner.invoke(cli, ["settings", "reset"])

    assert result.exit_code == 0
    mc.post.assert_called_once_with("/settings/reset")


# ── automation status / run / runs ────────────────────────────────────────────


def test_status_table(runner):
    with patch("cli.main._client") as mock_factory:
        mc = _mock_client()
        mc.get.return_value = _resp(200, [SYNC_STATUS])
        mock_factory.return_value = mc

        result = runner.invoke(cli, ["status"])

    assert result.exit_code == 0
    assert "sync" in result.output
    assert "armed" in result.output
    mc.get.assert_called_once_with("/automations")


def test_status_single_json(runner):
    with patch("cli.main._client") as mock_factory:
        mc = _mock_client()
        mc.get.return_value = _resp(200, SYNC_STATUS)
        mock_factory.return_value = mc

        result = runner.invoke(cli, ["--json", "status", "sync"])

    assert result.exit_code == 0
    assert json.loads(result.output)["state"] == "armed"
    mc.get.assert_called_once_with("/automations/sync")


def test_status_unknown_automation(runner):
    with patch("cli.main._client") as mock_factory:
        mc = _mock_client()
        mc.get.return_value = _resp(404, {"detail": "Automation 'cleanup' not found"})
        mock_factory.return_value = mc

        result = runner.invoke(cli, ["status", "cleanup"])

    assert result.exit_code == 1


def test_run_started(runner):
    with patch("cli.main._client") as mock_factory:
        mc = _mock_client()
        mc.post.return_value = _resp(202, {"automation": "analysis", "accepted": True})
        mock_factory.return_value = mc

        result = runner.invoke(cli, ["run", "analysis"])

    assert result.exit_code == 0
    assert "Started" in result.output
    mc.post.assert_called_once_with("/automations/analysis/run")


def test_run_already_running(runner):
    with patch("cli.main._client") as mock_factory:
        mc = _mock_client()
        mc.post.return_value = _resp(409, {"detail": "Automation 'sync' is already running"})
        mock_factory.return_value = mc

        result = runner.invoke(cli, ["run", "sync"])

    assert result.exit_code == 1


def test_runs_json(runner):
    rows = [{
        "run_id": "a1b2c3d4e5f6",
        "automation": "analysis",
        "trigger": "timer",
        "status": "failed",
        "parameter": 50,
        "started_at": "2026-03-01T12:00:00Z",
        "finished_at": "2026-03-01T12:00:02Z",
        "duration_seconds": 2.0,
        "error": "HTTP 500: boom",
    }]
    with patch("cli.main._client") as mock_factory:
        mc = _mock_client()
        mc.get.return_value = _resp(200, rows)
        mock_factory.return_value = mc

        result = runner.invoke(cli, ["--json", "runs", "analysis", "--limit", "5"])

    assert result.exit_code == 0
    assert json.loads(result.output)[0]["run_id"] == "a1b2c3d4e5f6"
    mc.get.assert_called_once_with("/automations/analysis/runs", params={"limit": 5})


def test_runs_empty(runner):
    with patch("cli.main._client") as mock_factory:
        mc = _mock_client()
        mc.get.return_value = _resp(200, [])
        mock_factory.return_value = mc

        result = runner.invoke(cli, ["runs", "sync"])

    assert result.exit_code == 0
    assert "No runs found" in result.output


def test_settings_set_unknown_key(runner):
    with patch("cli.main._client") as mock_factory:
        mc = _mock_client()
        mc.patch.return_value = _resp(422, text='{"detail": [{"type": "extra_forbidden"}]}')
        mock_factory.return_value = mc

        result = runner.invoke(cli, ["settings", "set", "auto_analysys=true"])

    assert result.exit_code == 1
    assert "Updated" not in result.output
    mc.patch.assert_called_once_with("/settings", json={"auto_analysys": True})


def test_settings_reset_json(runner):
    with patch("cli.main._client") as mock_factory:
        mc = _mock_client()
        mc.post.return_value = _resp(200, SETTINGS)
        mock_factory.return_value = mc

        result = runner.invoke(cli, ["--json", "settings", "reset"])

    assert result.exit_code == 0
    assert json.loads(result.output) == SETTINGS
