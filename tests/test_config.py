"""Tests for ServiceConfig environment loading."""

from core.config import ServiceConfig


def test_defaults_without_env(monkeypatch):
    for var in ("FUNCTIONS_URL", "TIME_UNIT_SECONDS", "LOG_JSON", "ANALYSIS_FUNCTION"):
        monkeypatch.delenv(var, raising=False)
    cfg = ServiceConfig.from_env(dotenv=False)
    assert cfg.analysis_function == "batch-analyze-posts"
    assert cfg.time_unit_seconds == 60.0
    assert cfg.log_json is False


def test_env_overrides_and_coercion(monkeypatch):
    monkeypatch.setenv("FUNCTIONS_URL", "https://example.test/functions/v1")
    monkeypatch.setenv("TIME_UNIT_SECONDS", "0.5")
    monkeypatch.setenv("LOG_JSON", "true")
    cfg = ServiceConfig.from_env(dotenv=False)
    assert cfg.functions_url == "https://example.test/functions/v1"
    assert cfg.time_unit_seconds == 0.5
    assert cfg.log_json is True
