"""Service configuration read from the environment (and a .env file)."""

import os

from dotenv import load_dotenv
from pydantic import BaseModel


class ServiceConfig(BaseModel):
    functions_url: str = "http://localhost:54321/functions/v1"
    functions_key: str = ""
    analysis_function: str = "batch-analyze-posts"
    sync_function: str = "inoreader-rss-ingestion"
    settings_path: str = "automation_settings.json"
    runs_db_url: str = "sqlite+aiosqlite:///job_runs.db"
    log_level: str = "INFO"
    log_json: bool = False
    # Seconds in one scheduling "minute"; shrink for demos
    time_unit_seconds: float = 60.0

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "ServiceConfig":
        if dotenv:
            load_dotenv()
        env = {
            "functions_url":     os.getenv("FUNCTIONS_URL"),
            "functions_key":     os.getenv("FUNCTIONS_KEY"),
            "analysis_function": os.getenv("ANALYSIS_FUNCTION"),
            "sync_function":     os.getenv("SYNC_FUNCTION"),
            "settings_path":     os.getenv("SETTINGS_PATH"),
            "runs_db_url":       os.getenv("RUNS_DB_URL"),
            "log_level":         os.getenv("LOG_LEVEL"),
            "log_json":          os.getenv("LOG_JSON"),
            "time_unit_seconds": os.getenv("TIME_UNIT_SECONDS"),
        }
        return cls(**{k: v for k, v in env.items() if v is not None})
