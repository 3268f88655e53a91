# src/studio_tasks/tasks/task_cache.py

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime

from ..core.ports import KeyValueStore
from ..errors import PersistenceError
from .task_models import Task, format_timestamp, parse_timestamp, utcnow

logger = logging.getLogger(__name__)

STORAGE_KEY = "studio_tasks"
STORAGE_VERSION = "1.0"


@dataclass(slots=True)
class CacheEnvelope:
    version: str
    tasks: list[Task]
    last_sync: datetime
    owner_identity: str | None = None

    def to_json(self) -> str:
        return json.dumps(
            {
                "version": self.version,
                "tasks": [t.to_dict() for t in self.tasks],
                "last_sync": format_timestamp(self.last_sync),
                "owner_identity": self.owner_identity,
            },
            ensure_ascii=False,
        )

    @classmethod
    def from_json(cls, raw: str) -> CacheEnvelope:
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise PersistenceError(f"cache slot is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise PersistenceError("cache slot is not a JSON object")

        raw_tasks = data.get("tasks")
        if not isinstance(raw_tasks, list):
            raise PersistenceError("cache slot has no task list")

        try:
            tasks = [Task.from_dict(t) for t in raw_tasks]
            last_sync = parse_timestamp(data.get("last_sync")) or utcnow()
        except (KeyError, TypeError, ValueError) as e:
            raise PersistenceError(f"cache slot holds a malformed task: {e}") from e

        owner = data.get("owner_identity")
        return cls(
            version=str(data.get("version", "")),
            tasks=tasks,
            last_sync=last_sync,
            owner_identity=str(owner) if owner is not None else None,
        )


class TaskCache:
    """
    Durable copy of the task set in one local key/value slot.

    - save() never raises.
    - load() discards the whole slot on any mismatch (version, owner) or
      corruption; there is no migration path.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        *,
        key: str = STORAGE_KEY,
        version: str = STORAGE_VERSION,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._kv = kv
        self._key = key
        self._version = version
        self._clock = clock

    @property
    def version(self) -> str:
        return self._version

    def save(self, tasks: Iterable[Task], owner_identity: str | None = None) -> None:
        try:
            envelope = CacheEnvelope(
                version=self._version,
                tasks=list(tasks),
                last_sync=self._clock(),
                owner_identity=owner_identity,
            )
            self._kv.set(self._key, envelope.to_json())
            logger.debug("Saved %d tasks owner=%s", len(envelope.tasks), owner_identity)
        except Exception:
            logger.exception("Failed to save tasks to the local cache.")

    def load(self, owner_identity: str | None = None) -> list[Task]:
        try:
            envelope = self._read_envelope()
        except PersistenceError as e:
            logger.warning("Discarding task cache: %s", e)
            self.clear()
            return []
        except Exception:
            logger.exception("Failed to read the task cache.")
            return []

        if envelope is None:
            return []

        try:
            self._check_envelope(envelope, owner_identity)
        except PersistenceError as e:
            logger.warning("Discarding task cache: %s", e)
            self.clear()
            return []

        logger.info("Loaded %d cached tasks owner=%s", len(envelope.tasks), owner_identity)
        return envelope.tasks

    def clear(self) -> None:
        try:
            self._kv.delete(self._key)
        except Exception:
            logger.exception("Failed to clear the task cache.")

    def last_sync_time(self) -> datetime | None:
        try:
            envelope = self._read_envelope()
        except Exception:
            logger.debug("Failed to read last sync time.", exc_info=True)
            return None
        return envelope.last_sync if envelope is not None else None

    def _read_envelope(self) -> CacheEnvelope | None:
        raw = self._kv.get(self._key)
        if not raw:
            return None
        return CacheEnvelope.from_json(raw)

    def _check_envelope(self, envelope: CacheEnvelope, owner_identity: str | None) -> None:
        if envelope.version != self._version:
            raise PersistenceError(
                f"version mismatch (stored={envelope.version!r} running={self._version!r})"
            )
        # None means anonymous/single-user mode: ownership is not checked.
        if owner_identity is not None and envelope.owner_identity != owner_identity:
            raise PersistenceError(
                f"owner mismatch (stored={envelope.owner_identity!r} requested={owner_identity!r})"
            )


class CachePersister:
    """Task store persist hook bound to the current owner identity."""

    def __init__(self, cache: TaskCache, owner_identity: str | None = None) -> None:
        self.cache = cache
        self.owner_identity = owner_identity

    def __call__(self, tasks: list[Task]) -> None:
        self.cache.save(tasks, owner_identity=self.owner_identity)

    def load(self) -> list[Task]:
        return self.cache.load(owner_identity=self.owner_identity)
