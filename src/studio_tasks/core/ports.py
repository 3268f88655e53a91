# src/studio_tasks/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the task tracker.

The tracker depends on Protocols instead of concrete implementations.
This keeps the remote service and local storage swappable and makes testing easier.
"""

from typing import Any, Protocol


class KeyValueStore(Protocol):
    """A local persistent slot store (string keys, string values)."""

    def get(self, key: str) -> str | None: ...
    def set(self, key: str, value: str) -> None: ...
    def delete(self, key: str) -> None: ...


class JobStatusClient(Protocol):
    """Live status of one remote job at a time (used by the poller)."""

    async def get_job_status(self, job_id: str) -> Any: ...
    async def get_job_result_info(self, job_id: str) -> Any: ...
    def download_url(self, job_id: str) -> str: ...


class JobHistoryClient(Protocol):
    """Authoritative, paginated remote job history (used by the reconciler)."""

    async def get_jobs_history(self, params: Any = None) -> Any: ...


class TaskPersister(Protocol):
    """Called by the task store with the full task list after every mutation."""

    def __call__(self, tasks: list[Any]) -> None: ...
