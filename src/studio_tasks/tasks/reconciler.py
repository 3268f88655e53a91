# src/studio_tasks/tasks/reconciler.py

"""
Merge the locally-held task set with the remote job history.

Local records win: they carry the full submission snapshot (files, prompts,
parameters) that the remote history does not keep. Remote history only
contributes jobs this device never recorded.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from ..api.models import HistoricalJob, JobsHistoryParams
from ..core.ports import JobHistoryClient
from .task_models import Task, TaskResult, TaskStatus, TaskType

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 100

FEATURE_TO_TASK_TYPE: dict[str, TaskType] = {
    "text_to_raw_mesh": TaskType.TEXT_TO_MESH,
    "text_to_textured_mesh": TaskType.TEXT_TO_TEXTURED_MESH,
    "image_to_raw_mesh": TaskType.IMAGE_TO_MESH,
    "image_to_textured_mesh": TaskType.IMAGE_TO_TEXTURED_MESH,
    "text_mesh_painting": TaskType.TEXT_MESH_PAINTING,
    "image_mesh_painting": TaskType.IMAGE_MESH_PAINTING,
    "mesh_segmentation": TaskType.MESH_SEGMENTATION,
    "part_completion": TaskType.PART_COMPLETION,
    "auto_rig": TaskType.AUTO_RIGGING,
}

FEATURE_NAMES: dict[str, str] = {
    "text_to_raw_mesh": "Text to 3D",
    "text_to_textured_mesh": "Text to Textured 3D",
    "image_to_raw_mesh": "Image to 3D",
    "image_to_textured_mesh": "Image to Textured 3D",
    "text_mesh_painting": "Text Mesh Painting",
    "image_mesh_painting": "Image Mesh Painting",
    "mesh_segmentation": "Mesh Segmentation",
    "part_completion": "Part Completion",
    "auto_rig": "Auto Rigging",
}


def generate_task_name(feature: str, job_id: str) -> str:
    friendly = FEATURE_NAMES.get(feature, "3D Generation")
    suffix = (job_id.split("_")[-1] if job_id else "")[-6:] or "unknown"
    return f"{friendly} ({suffix})"


def convert_historical_job(job: HistoricalJob) -> Task:
    status = job.status

    completed_at = None
    if status.is_terminal:
        # History may omit completed_at; the task still needs one once terminal.
        completed_at = job.completed_at or job.created_at

    result = None
    if status is TaskStatus.COMPLETED:
        result = TaskResult(
            output_path=job.output_mesh_path,
            download_url=job.mesh_url,
            preview_image_url=job.thumbnail_url,
        )

    return Task(
        id=f"backend_{job.job_id}",
        job_id=job.job_id,
        type=FEATURE_TO_TASK_TYPE.get(job.feature, TaskType.TEXT_TO_MESH),
        name=generate_task_name(job.feature, job.job_id),
        status=status,
        created_at=job.created_at,
        completed_at=completed_at,
        processing_time=job.processing_time,
        progress=100 if status is TaskStatus.COMPLETED else 0,
        input_data={"parameters": {"model_preference": job.model_preference}},
        result=result,
        input_image_url=job.input_image_url,
        model_preference=job.model_preference,
    )


def merge_tasks(local: Iterable[Task], remote: Iterable[Task]) -> list[Task]:
    """
    Local tasks first (in order), then remote tasks whose job_id is unseen,
    newest first. Re-merging the same remote snapshot is a no-op.
    """
    merged: list[Task] = []
    seen: set[str] = set()

    for task in local:
        merged.append(task)
        if task.job_id:
            seen.add(task.job_id)

    for task in remote:
        if task.job_id and task.job_id not in seen:
            merged.append(task)
            seen.add(task.job_id)

    merged.sort(key=lambda t: t.created_at, reverse=True)
    return merged


async def fetch_historical_jobs(
    client: JobHistoryClient,
    *,
    limit: int = DEFAULT_HISTORY_LIMIT,
) -> list[HistoricalJob]:
    """One page of history, all statuses. Errors propagate to the caller."""
    page = await client.get_jobs_history(JobsHistoryParams(limit=limit, offset=0, status=None))
    return list(page.jobs)


async def reconcile(
    local: list[Task],
    client: JobHistoryClient,
    *,
    limit: int = DEFAULT_HISTORY_LIMIT,
) -> list[Task]:
    """Merge local with remote history; on any remote failure return local unchanged."""
    try:
        jobs = await fetch_historical_jobs(client, limit=limit)
        remote = [convert_historical_job(job) for job in jobs]
    except Exception:
        logger.exception("Failed to merge tasks with remote history; keeping local tasks.")
        return local

    merged = merge_tasks(local, remote)
    logger.info(
        "Reconciled tasks local=%d remote=%d merged=%d", len(local), len(remote), len(merged)
    )
    return merged
