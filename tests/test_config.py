# tests/test_config.py

from __future__ import annotations

from pathlib import Path

import pytest

from studio_tasks.config import Settings


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "STUDIO_API_BASE_URL",
        "STUDIO_API_TOKEN",
        "STUDIO_API_MAX_RETRIES",
        "STUDIO_POLL_INTERVAL_SECONDS",
        "STUDIO_DATA_DIR",
        "STUDIO_CACHE_DB_PATH",
    ):
        monkeypatch.delenv(name, raising=False)

    s = Settings.from_env()

    assert s.api_base_url == "http://localhost:7842"
    assert s.api_token is None
    assert s.api_max_retries == 2
    assert s.poll_interval_seconds == 5.0
    assert s.cache_db_path == Path(".local/studio_tasks") / "cache.sqlite3"


def test_env_overrides_and_clamps(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("STUDIO_API_BASE_URL", "https://studio.example.com/")
    monkeypatch.setenv("STUDIO_API_TOKEN", "secret")
    monkeypatch.setenv("STUDIO_API_MAX_RETRIES", "-3")
    monkeypatch.setenv("STUDIO_POLL_INTERVAL_SECONDS", "0.01")
    monkeypatch.setenv("STUDIO_HISTORY_LIMIT", "not-a-number")
    monkeypatch.setenv("STUDIO_CONSOLE_ENABLED", "no")
    monkeypatch.setenv("STUDIO_DATA_DIR", str(tmp_path))
    monkeypatch.delenv("STUDIO_CACHE_DB_PATH", raising=False)

    s = Settings.from_env()

    assert s.api_base_url == "https://studio.example.com"
    assert s.api_token == "secret"
    assert s.api_max_retries == 0
    assert s.poll_interval_seconds == 0.5
    assert s.history_limit == 100
    assert s.console_enabled is False
    assert s.cache_db_path == tmp_path / "cache.sqlite3"
