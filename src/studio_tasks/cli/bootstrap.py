# src/studio_tasks/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (API client, cache, store, poller).
"""

from __future__ import annotations

import logging

from ..api.client import StudioApiClient
from ..config import get_settings
from ..core.ports import KeyValueStore
from ..core.state import AppState
from ..storage.auth_store import AuthPersistence
from ..storage.kv_store import SqliteKeyValueStore
from ..tasks.task_cache import CachePersister, TaskCache
from ..tasks.task_scheduler import TaskPoller
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.cache_db_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(
    *,
    settings=None,
    kv: KeyValueStore | None = None,
    api: StudioApiClient | None = None,
) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings (and the storage/API seams) injectable makes the app easier
    to test. If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    if kv is None:
        _ensure_local_dirs(settings)
        kv = SqliteKeyValueStore(settings.cache_db_path)

    auth = AuthPersistence(kv)
    stored = auth.load_auth()

    if api is None:
        api = StudioApiClient.from_settings(settings, token=stored.token if stored else None)
    elif stored is not None:
        api.set_token(stored.token)

    persister = CachePersister(TaskCache(kv), owner_identity=auth.owner_identity())
    store = TaskStore(persister)
    poller = TaskPoller(store, api, interval_seconds=settings.poll_interval_seconds)

    logger.info("State ready owner=%s api=%s", persister.owner_identity, api.base_url)
    return AppState(
        settings=settings,
        api=api,
        auth=auth,
        persister=persister,
        task_store=store,
        poller=poller,
    )
