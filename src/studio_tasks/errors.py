# src/studio_tasks/errors.py

"""
Error taxonomy of the task tracker.

None of these reach the UI as fatal errors: the cache, reconciler and poller
catch them and keep the last known good state.
"""

from __future__ import annotations


class StudioTasksError(Exception):
    """Base class for tracker errors."""


class PersistenceError(StudioTasksError):
    """The local cache slot is unreadable, corrupt, outdated or owned by someone else."""


class RemoteFetchError(StudioTasksError):
    """A remote call failed after the transport-level retries were exhausted."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class InvalidTaskPatch(StudioTasksError, ValueError):
    """A TaskPatch combines fields that cannot legally be set together."""


class DuplicateJobError(StudioTasksError, ValueError):
    """A job id is already tracked by another task."""
