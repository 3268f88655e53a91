# src/studio_tasks/tasks/task_scheduler.py

from __future__ import annotations

"""
Task poller.

A small polling loop that:
- reads the active tasks from the task store,
- fetches each one's remote status concurrently,
- writes back only what changed (every store update is a full persist),
- enriches completed tasks with a downloadable result reference.

Terminal tasks leave the active index and are never queried again.
"""

import asyncio
import contextlib
import logging
from collections.abc import Callable
from datetime import datetime

from ..api.models import JobInfo
from ..core.ports import JobStatusClient
from ..errors import RemoteFetchError
from .task_models import Task, TaskPatch, TaskResult, TaskStatus, utcnow
from .task_store import TaskStore

logger = logging.getLogger(__name__)

FAILED_MESSAGE = "Task failed during processing"
PROCESSING_PROGRESS = 50


def build_patch(task: Task, info: JobInfo, *, now: datetime) -> TaskPatch | None:
    """
    Compare a remote status report against the task.

    Returns None when nothing the remote may report has changed. Status only
    moves forward; a report older than what we already know is ignored.
    """
    status_changed = info.status != task.status and info.status.rank >= task.status.rank
    new_image = bool(info.input_image_url) and not task.input_image_url
    new_model = bool(info.model_preference) and not task.model_preference

    if not (status_changed or new_image or new_model):
        return None

    status = info.status if status_changed else task.status

    progress = task.progress
    if status is TaskStatus.COMPLETED:
        progress = 100
    elif status is TaskStatus.PROCESSING:
        progress = max(task.progress, PROCESSING_PROGRESS)

    completed_at = None
    processing_time = None
    result = None
    error = None

    if status_changed and status is TaskStatus.COMPLETED:
        completed_at = now
        processing_time = info.processing_time
        res = info.result
        result = TaskResult(
            output_path=res.mesh_location if res else None,
            preview_image_url=res.thumbnail_location if res else None,
            metadata=res.generation_info if res else None,
        )
    elif status_changed and status is TaskStatus.FAILED:
        completed_at = now
        processing_time = info.processing_time
        error = FAILED_MESSAGE

    return TaskPatch(
        status=status if status_changed else None,
        progress=progress if progress != task.progress else None,
        completed_at=completed_at,
        processing_time=processing_time,
        result=result,
        error=error,
        input_image_url=info.input_image_url if new_image else None,
        model_preference=info.model_preference if new_model else None,
    )


class TaskPoller:
    """
    Keeps in-progress tasks current without user action.

    - poll_all_active_tasks() is guarded: while a cycle is in flight, another
      call returns immediately without any remote request.
    - start() polls once right away, then ticks every interval_seconds. Each
      tick spawns a cycle, so a slow cycle makes later ticks skip.
    - stop() cancels the timer, then waits for in-flight cycles so no fetch
      outlives the client.
    """

    def __init__(
        self,
        store: TaskStore,
        client: JobStatusClient,
        *,
        interval_seconds: float = 5.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._client = client
        self._interval = max(0.01, float(interval_seconds))
        self._clock = clock
        self._in_flight = False
        self._timer: asyncio.Task[None] | None = None
        self._cycles: set[asyncio.Task[int]] = set()

    @property
    def is_polling(self) -> bool:
        return self._in_flight

    @property
    def is_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    async def poll_task(self, task: Task) -> None:
        if not task.job_id or not task.status.is_active:
            return

        try:
            info = await self._client.get_job_status(task.job_id)
        except RemoteFetchError as e:
            logger.warning("Status fetch failed task=%s job=%s: %s", task.id, task.job_id, e)
            return

        patch = build_patch(task, info, now=self._clock())
        if patch is None:
            return

        if patch.status is not None:
            logger.info("Task %s status changed: %s -> %s", task.id, task.status.value, patch.status.value)

        if patch.result is not None:
            patch = await self._with_download_info(task.job_id, patch)

        self._store.update(task.id, patch)

    async def _with_download_info(self, job_id: str, patch: TaskPatch) -> TaskPatch:
        assert patch.result is not None
        result = patch.result
        try:
            info = await self._client.get_job_result_info(job_id)
        except Exception:
            # Any enrichment failure still completes the task.
            logger.warning("Result info fetch failed job=%s; using download route", job_id, exc_info=True)
            info = None

        if info is not None and info.downloadable_url:
            result.download_url = info.downloadable_url
            result.file_size = info.file_size
            result.format = info.file_extension
        else:
            result.download_url = self._client.download_url(job_id)
        return patch

    async def poll_all_active_tasks(self) -> int:
        """Run one cycle; returns the number of status requests dispatched."""
        if self._in_flight:
            logger.debug("Previous poll cycle still running; skipping.")
            return 0

        self._in_flight = True
        try:
            active = [t for t in self._store.active_tasks() if t.job_id]
            if not active:
                return 0

            logger.debug("Polling %d active tasks", len(active))
            results = await asyncio.gather(
                *(self.poll_task(t) for t in active),
                return_exceptions=True,
            )
            for task, res in zip(active, results):
                if isinstance(res, BaseException):
                    logger.error(
                        "Polling task %s crashed",
                        task.id,
                        exc_info=(type(res), res, res.__traceback__),
                    )
            return len(active)
        finally:
            self._in_flight = False

    def _spawn_cycle(self) -> None:
        cycle = asyncio.create_task(self.poll_all_active_tasks())
        self._cycles.add(cycle)
        cycle.add_done_callback(self._cycles.discard)

    async def _run(self) -> None:
        while True:
            self._spawn_cycle()
            await asyncio.sleep(self._interval)

    def start(self) -> asyncio.Task[None]:
        """Start the timer on the running event loop (first cycle runs immediately)."""
        if self.is_running:
            assert self._timer is not None
            return self._timer
        self._timer = asyncio.create_task(self._run())
        logger.info("Task poller started interval=%.1fs", self._interval)
        return self._timer

    async def stop(self) -> None:
        timer = self._timer
        self._timer = None
        if timer is not None:
            timer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await timer
        if self._cycles:
            await asyncio.gather(*list(self._cycles), return_exceptions=True)
        if timer is not None:
            logger.info("Task poller stopped.")
