# src/studio_tasks/tasks/task_store.py

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Literal

from ..core.ports import TaskPersister
from ..errors import DuplicateJobError
from .task_models import NewTask, Task, TaskPatch, TaskStatus, apply_patch, utcnow

logger = logging.getLogger(__name__)

TerminalKind = Literal["completed", "failed"]


def new_task_id() -> str:
    return f"task_{uuid.uuid4().hex}"


def _index_name(status: TaskStatus) -> str:
    if status.is_active:
        return "active"
    return status.value


@dataclass(slots=True, frozen=True)
class TaskSet:
    """
    Immutable task collection plus its three derived id indexes.

    Every transition returns a new TaskSet; nothing here performs I/O.
    """

    tasks: tuple[Task, ...] = ()
    active: tuple[str, ...] = ()
    completed: tuple[str, ...] = ()
    failed: tuple[str, ...] = ()

    @classmethod
    def from_tasks(cls, tasks: Iterable[Task]) -> TaskSet:
        items = tuple(tasks)
        indexes: dict[str, list[str]] = {"active": [], "completed": [], "failed": []}
        for t in items:
            indexes[_index_name(t.status)].append(t.id)
        return cls(
            tasks=items,
            active=tuple(indexes["active"]),
            completed=tuple(indexes["completed"]),
            failed=tuple(indexes["failed"]),
        )

    def get(self, task_id: str) -> Task | None:
        for t in self.tasks:
            if t.id == task_id:
                return t
        return None

    def find_by_job_id(self, job_id: str) -> Task | None:
        for t in self.tasks:
            if t.job_id == job_id:
                return t
        return None

    def _indexes_without(self, task_id: str) -> dict[str, tuple[str, ...]]:
        return {
            "active": tuple(i for i in self.active if i != task_id),
            "completed": tuple(i for i in self.completed if i != task_id),
            "failed": tuple(i for i in self.failed if i != task_id),
        }

    def with_created(self, task: Task) -> TaskSet:
        if self.get(task.id) is not None:
            raise ValueError(f"task id already exists: {task.id}")
        if task.job_id and self.find_by_job_id(task.job_id) is not None:
            raise DuplicateJobError(f"job id already tracked: {task.job_id}")
        indexes = self._indexes_without(task.id)
        name = _index_name(task.status)
        indexes[name] = indexes[name] + (task.id,)
        return TaskSet(tasks=self.tasks + (task,), **indexes)

    def with_updated(self, task_id: str, patch: TaskPatch, *, now: datetime | None = None) -> TaskSet:
        """Unknown ids leave the set unchanged (returns self)."""
        current = self.get(task_id)
        if current is None:
            return self
        if patch.job_id and patch.job_id != current.job_id:
            other = self.find_by_job_id(patch.job_id)
            if other is not None and other.id != task_id:
                raise DuplicateJobError(f"job id already tracked: {patch.job_id}")

        updated = apply_patch(current, patch, now=now)
        indexes = self._indexes_without(task_id)
        name = _index_name(updated.status)
        indexes[name] = indexes[name] + (task_id,)
        tasks = tuple(updated if t.id == task_id else t for t in self.tasks)
        return TaskSet(tasks=tasks, **indexes)

    def without(self, task_id: str) -> TaskSet:
        if self.get(task_id) is None:
            return self
        return TaskSet(
            tasks=tuple(t for t in self.tasks if t.id != task_id),
            **self._indexes_without(task_id),
        )

    def without_kind(self, kind: TerminalKind) -> TaskSet:
        doomed = set(self.completed if kind == "completed" else self.failed)
        if not doomed:
            return self
        return replace(
            self,
            tasks=tuple(t for t in self.tasks if t.id not in doomed),
            **{kind: ()},
        )


class TaskStore:
    """
    In-memory source of truth for the running application.

    Holds the current TaskSet and calls the injected persister with the full
    task list after every mutation. All mutations are serialised by one lock:
    the console thread and the poller thread both mutate the store.
    """

    def __init__(
        self,
        persist: TaskPersister | None = None,
        *,
        id_factory: Callable[[], str] = new_task_id,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._persist = persist
        self._id_factory = id_factory
        self._clock = clock
        self._lock = threading.RLock()
        self._state = TaskSet()

    # ---- readers ----

    def snapshot(self) -> TaskSet:
        with self._lock:
            return self._state

    @property
    def tasks(self) -> list[Task]:
        return list(self.snapshot().tasks)

    @property
    def active(self) -> list[str]:
        return list(self.snapshot().active)

    @property
    def completed(self) -> list[str]:
        return list(self.snapshot().completed)

    @property
    def failed(self) -> list[str]:
        return list(self.snapshot().failed)

    def get(self, task_id: str) -> Task | None:
        return self.snapshot().get(task_id)

    def find_by_job_id(self, job_id: str) -> Task | None:
        return self.snapshot().find_by_job_id(job_id)

    def active_tasks(self) -> list[Task]:
        state = self.snapshot()
        out: list[Task] = []
        for task_id in state.active:
            t = state.get(task_id)
            if t is not None:
                out.append(t)
        return out

    # ---- mutations ----

    def create(self, new_task: NewTask) -> str:
        with self._lock:
            task_id = self._id_factory()
            while self._state.get(task_id) is not None:
                task_id = self._id_factory()
            task = Task(
                id=task_id,
                type=new_task.type,
                name=new_task.name,
                status=new_task.status,
                created_at=self._clock(),
                job_id=new_task.job_id,
                progress=new_task.progress,
                input_data=dict(new_task.input_data),
                input_image_url=new_task.input_image_url,
                model_preference=new_task.model_preference,
            )
            if task.status.is_terminal:
                task.completed_at = task.created_at
            self._commit(self._state.with_created(task))
        logger.info("Task created id=%s job_id=%s type=%s", task_id, task.job_id, task.type.value)
        return task_id

    def update(self, task_id: str, patch: TaskPatch) -> Task | None:
        with self._lock:
            new_state = self._state.with_updated(task_id, patch, now=self._clock())
            if new_state is self._state:
                logger.debug("update ignored: unknown task id=%s", task_id)
                return None
            self._commit(new_state)
            return new_state.get(task_id)

    def remove(self, task_id: str) -> None:
        with self._lock:
            new_state = self._state.without(task_id)
            if new_state is self._state:
                logger.debug("remove ignored: unknown task id=%s", task_id)
                return
            self._commit(new_state)
        logger.info("Task removed id=%s", task_id)

    def clear_terminal(self, kind: TerminalKind) -> int:
        """Remove every task indexed under kind; returns how many were removed."""
        if kind not in ("completed", "failed"):
            raise ValueError(f"unknown terminal kind: {kind}")
        with self._lock:
            before = len(self._state.tasks)
            new_state = self._state.without_kind(kind)
            if new_state is self._state:
                return 0
            self._commit(new_state)
            removed = before - len(new_state.tasks)
        logger.info("Cleared %d %s tasks", removed, kind)
        return removed

    def hydrate(self, tasks: Iterable[Task]) -> None:
        """Replace the whole set (after reconciliation) and persist it."""
        with self._lock:
            self._commit(TaskSet.from_tasks(tasks))

    def _commit(self, new_state: TaskSet) -> None:
        self._state = new_state
        if self._persist is None:
            return
        try:
            self._persist(list(new_state.tasks))
        except Exception:
            logger.exception("Task persist hook failed.")
