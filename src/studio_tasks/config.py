# src/studio_tasks/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time (the API token is optional).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ENV_PREFIX = "STUDIO"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


# Real environment variables take precedence over .env values.
load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    console_enabled: bool

    # ---- Remote job service ----
    api_base_url: str
    api_token: Optional[str]
    api_timeout_seconds: float
    api_connect_timeout_seconds: float
    api_max_retries: int
    api_retry_backoff_seconds: float

    # ---- Polling / reconciliation ----
    poll_interval_seconds: float
    history_limit: int

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    cache_db_path: Path

    @staticmethod
    def from_env() -> "Settings":
        app_name = _first_env(_k("APP_NAME"), default="studio-tasks") or "studio-tasks"
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)

        api_base_url = _env(_k("API_BASE_URL"), "http://localhost:7842").strip().rstrip("/")
        api_token = _first_env(_k("API_TOKEN"), default=None)

        # Read timeout is never shorter than the connect timeout.
        api_connect_timeout_seconds = max(0.5, _env_float(_k("API_CONNECT_TIMEOUT_SECONDS"), 5.0))
        api_timeout_seconds = max(
            api_connect_timeout_seconds, _env_float(_k("API_TIMEOUT_SECONDS"), 30.0)
        )
        api_max_retries = max(0, _env_int(_k("API_MAX_RETRIES"), 2))
        api_retry_backoff_seconds = max(0.0, _env_float(_k("API_RETRY_BACKOFF_SECONDS"), 0.5))

        poll_interval_seconds = max(0.5, _env_float(_k("POLL_INTERVAL_SECONDS"), 5.0))
        history_limit = max(1, _env_int(_k("HISTORY_LIMIT"), 100))

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/studio_tasks"))
        cache_db_path = _env_path(_k("CACHE_DB_PATH"), data_dir / "cache.sqlite3")

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            api_base_url=api_base_url,
            api_token=api_token,
            api_timeout_seconds=api_timeout_seconds,
            api_connect_timeout_seconds=api_connect_timeout_seconds,
            api_max_retries=api_max_retries,
            api_retry_backoff_seconds=api_retry_backoff_seconds,
            poll_interval_seconds=poll_interval_seconds,
            history_limit=history_limit,
            data_dir=data_dir,
            cache_db_path=cache_db_path,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
