# src/studio_tasks/core/state.py

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from ..api.client import StudioApiClient
from ..storage.auth_store import AuthPersistence
from ..tasks.task_cache import CachePersister
from ..tasks.task_scheduler import TaskPoller
from ..tasks.task_store import TaskStore


@dataclass
class AppState:
    """Everything the console, commands and task helpers share."""

    settings: object

    api: StudioApiClient
    auth: AuthPersistence
    persister: CachePersister
    task_store: TaskStore
    poller: TaskPoller

    # Event loop of the background tracker thread, once started.
    loop: asyncio.AbstractEventLoop | None = None

    @property
    def owner_identity(self) -> str | None:
        return self.persister.owner_identity
