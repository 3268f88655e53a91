# tests/test_task_cache.py

from __future__ import annotations

import json
from pathlib import Path

from studio_tasks.storage.auth_store import AuthPersistence
from studio_tasks.storage.kv_store import MemoryKeyValueStore, SqliteKeyValueStore
from studio_tasks.tasks.task_cache import STORAGE_KEY, TaskCache
from studio_tasks.tasks.task_models import Task, TaskResult, TaskStatus, TaskType

from .fakes import T0, FailingKeyValueStore, FakeClock


def _task(task_id: str, job_id: str | None, status: TaskStatus = TaskStatus.QUEUED) -> Task:
    return Task(
        id=task_id,
        job_id=job_id,
        type=TaskType.IMAGE_TO_MESH,
        name=f"task {task_id}",
        status=status,
        created_at=T0,
        completed_at=T0 if status.is_terminal else None,
        input_data={"files": ["photo.png"], "parameters": {"seed": 7}},
        result=TaskResult(output_path="out.glb", download_url="http://x/out.glb")
        if status is TaskStatus.COMPLETED
        else None,
    )


def test_save_then_load_restores_tasks(cache: TaskCache, clock: FakeClock) -> None:
    tasks = [_task("task_1", "j1"), _task("task_2", "j2", TaskStatus.COMPLETED)]
    cache.save(tasks, owner_identity="alice")

    loaded = cache.load(owner_identity="alice")
    assert loaded == tasks
    assert cache.last_sync_time() == clock.now


def test_envelope_layout(cache: TaskCache, kv: MemoryKeyValueStore) -> None:
    cache.save([_task("task_1", "j1")], owner_identity="alice")

    data = json.loads(kv.get(STORAGE_KEY) or "")
    assert data["version"] == cache.version
    assert data["owner_identity"] == "alice"
    assert data["tasks"][0]["created_at"] == T0.isoformat()
    assert "last_sync" in data


def test_load_missing_slot_returns_empty(cache: TaskCache) -> None:
    assert cache.load() == []
    assert cache.last_sync_time() is None


def test_owner_isolation_discards_foreign_slot(cache: TaskCache, kv: MemoryKeyValueStore) -> None:
    cache.save([_task("task_1", "j1")], owner_identity="B")

    assert cache.load(owner_identity="A") == []
    assert kv.get(STORAGE_KEY) is None


def test_anonymous_load_skips_owner_check(cache: TaskCache) -> None:
    cache.save([_task("task_1", "j1")], owner_identity="B")
    assert [t.id for t in cache.load(owner_identity=None)] == ["task_1"]


def test_version_mismatch_clears_slot(cache: TaskCache, kv: MemoryKeyValueStore) -> None:
    cache.save([_task("task_1", "j1")])

    data = json.loads(kv.get(STORAGE_KEY) or "")
    data["version"] = "0.9"
    kv.set(STORAGE_KEY, json.dumps(data))

    assert cache.load(owner_identity=None) == []
    assert kv.get(STORAGE_KEY) is None


def test_corrupt_slot_clears_slot(cache: TaskCache, kv: MemoryKeyValueStore) -> None:
    kv.set(STORAGE_KEY, "{not json")
    assert cache.load() == []
    assert kv.get(STORAGE_KEY) is None

    kv.set(STORAGE_KEY, json.dumps({"version": cache.version, "tasks": [{"id": "x"}]}))
    assert cache.load() == []
    assert kv.get(STORAGE_KEY) is None


def test_storage_failures_are_swallowed() -> None:
    cache = TaskCache(FailingKeyValueStore())
    cache.save([_task("task_1", "j1")])
    assert cache.load() == []
    cache.clear()
    assert cache.last_sync_time() is None


def test_sqlite_kv_store_survives_reopen(tmp_path: Path) -> None:
    db = tmp_path / "cache.sqlite3"
    TaskCache(SqliteKeyValueStore(db), clock=FakeClock()).save([_task("task_1", "j1")], "alice")

    reopened = TaskCache(SqliteKeyValueStore(db))
    assert [t.job_id for t in reopened.load("alice")] == ["j1"]

    reopened.clear()
    assert SqliteKeyValueStore(db).get(STORAGE_KEY) is None


def test_auth_persistence_decides_owner(kv: MemoryKeyValueStore) -> None:
    auth = AuthPersistence(kv)
    assert auth.owner_identity() is None
    assert not auth.is_authenticated()

    auth.save_auth("tok-1", {"id": 42, "email": "a@example.com"})
    assert auth.is_authenticated()
    assert auth.get_token() == "tok-1"
    assert auth.owner_identity() == "42"

    auth.save_auth("tok-2", {"email": "b@example.com"})
    assert auth.owner_identity() == "b@example.com"

    auth.clear_auth()
    assert auth.load_auth() is None
