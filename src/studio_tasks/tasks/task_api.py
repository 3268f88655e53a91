# src/studio_tasks/tasks/task_api.py

from __future__ import annotations

import logging
from typing import Any

from ..core.state import AppState
from .reconciler import DEFAULT_HISTORY_LIMIT, reconcile
from .task_models import NewTask, Task, TaskPatch, TaskStatus, TaskType

logger = logging.getLogger(__name__)


def _history_limit(state: AppState) -> int:
    return int(getattr(state.settings, "history_limit", DEFAULT_HISTORY_LIMIT))


def add_submitted_task(
    state: AppState,
    *,
    task_type: TaskType,
    name: str,
    job_id: str | None,
    input_data: dict[str, Any] | None = None,
    model_preference: str | None = None,
) -> str:
    """
    Convenience helper for feature panels: track a job right after submission.
    """
    return state.task_store.create(
        NewTask(
            type=task_type,
            name=name,
            job_id=job_id,
            status=TaskStatus.QUEUED,
            progress=0,
            input_data=dict(input_data or {}),
            model_preference=model_preference,
        )
    )


async def initialize_tasks(state: AppState) -> list[Task]:
    """
    Startup sync: cached tasks (for the current owner) merged with remote
    history, hydrated into the store and persisted.
    """
    local = state.persister.load()
    merged = await reconcile(local, state.api, limit=_history_limit(state))
    state.task_store.hydrate(merged)
    logger.info("Tasks initialized: %d (owner=%s)", len(merged), state.owner_identity)
    return merged


async def load_tasks_from_history(state: AppState) -> list[Task]:
    """Manual refresh: merge the current in-memory set with remote history."""
    merged = await reconcile(state.task_store.tasks, state.api, limit=_history_limit(state))
    state.task_store.hydrate(merged)
    return merged


def retry_task(state: AppState, task_id: str, *, job_id: str | None = None) -> Task | None:
    """Put a task back into the queue, optionally under a freshly submitted job id."""
    return state.task_store.update(
        task_id,
        TaskPatch(status=TaskStatus.QUEUED, job_id=job_id, progress=0),
    )


def remove_task(state: AppState, task_id: str) -> None:
    state.task_store.remove(task_id)


def clear_completed_tasks(state: AppState) -> int:
    return state.task_store.clear_terminal("completed")


def clear_failed_tasks(state: AppState) -> int:
    return state.task_store.clear_terminal("failed")


async def switch_user(state: AppState, token: str, user: dict[str, Any]) -> list[Task]:
    """
    Sign in as another identity and reload that identity's tasks.

    The in-memory set is dropped first: a poll cycle during the history fetch
    must neither query the previous owner's jobs with the new token nor
    persist them under the new owner.
    """
    state.task_store.hydrate([])
    state.auth.save_auth(token, user)
    state.api.set_token(token)
    state.persister.owner_identity = state.auth.owner_identity()
    logger.info("Switched user owner=%s", state.owner_identity)
    return await initialize_tasks(state)


async def logout(state: AppState) -> list[Task]:
    """
    Forget the signed-in identity. The in-memory set is dropped before the
    anonymous reload, so the previous owner's tasks never reach the anonymous slot.
    """
    state.auth.clear_auth()
    state.api.set_token(None)
    state.persister.owner_identity = None
    state.task_store.hydrate([])
    return await initialize_tasks(state)
