# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from studio_tasks.cli.bootstrap import create_initial_state
from studio_tasks.core.state import AppState
from studio_tasks.storage.kv_store import MemoryKeyValueStore
from studio_tasks.tasks.task_cache import TaskCache
from studio_tasks.tasks.task_store import TaskStore

from .fakes import BASE_URL, FakeClock, FakeJobClient


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and bootstrap.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="studio-tasks-test",
        log_level="DEBUG",
        console_enabled=False,
        api_base_url=BASE_URL,
        api_token=None,
        api_timeout_seconds=5.0,
        api_connect_timeout_seconds=1.0,
        api_max_retries=0,
        api_retry_backoff_seconds=0.0,
        poll_interval_seconds=0.01,
        history_limit=50,
        data_dir=tmp_path,
        cache_db_path=tmp_path / "cache.sqlite3",
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def kv() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture()
def cache(kv: MemoryKeyValueStore, clock: FakeClock) -> TaskCache:
    return TaskCache(kv, clock=clock)


@pytest.fixture()
def store(clock: FakeClock) -> TaskStore:
    return TaskStore(clock=clock)


@pytest.fixture()
def client() -> FakeJobClient:
    return FakeJobClient()


@pytest.fixture()
def state(settings: SimpleNamespace, kv: MemoryKeyValueStore, client: FakeJobClient) -> AppState:
    """
    AppState wired with an in-memory key/value store and a fake job service.
    """
    return create_initial_state(settings=settings, kv=kv, api=client)  # type: ignore[arg-type]
