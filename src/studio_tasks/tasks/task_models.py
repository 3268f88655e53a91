# src/studio_tasks/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from ..errors import InvalidTaskPatch


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    queued -> processing -> completed | failed. Fast jobs may skip processing.
    Terminal statuses are absorbing for the poller; only a manual retry moves
    a task back to queued.
    """

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_active(self) -> bool:
        return self in (TaskStatus.QUEUED, TaskStatus.PROCESSING)

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)

    @property
    def rank(self) -> int:
        if self is TaskStatus.QUEUED:
            return 0
        if self is TaskStatus.PROCESSING:
            return 1
        return 2

    @classmethod
    def from_remote(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.QUEUED
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return cls.QUEUED


class TaskType(StrEnum):
    TEXT_TO_MESH = "text-to-mesh"
    TEXT_TO_TEXTURED_MESH = "text-to-textured-mesh"
    IMAGE_TO_MESH = "image-to-mesh"
    IMAGE_TO_TEXTURED_MESH = "image-to-textured-mesh"
    TEXT_MESH_PAINTING = "text-mesh-painting"
    IMAGE_MESH_PAINTING = "image-mesh-painting"
    MESH_SEGMENTATION = "mesh-segmentation"
    PART_COMPLETION = "part-completion"
    AUTO_RIGGING = "auto-rigging"

    @classmethod
    def from_stored(cls, raw: str | None) -> TaskType:
        if not raw:
            return cls.TEXT_TO_MESH
        try:
            return cls(raw)
        except ValueError:
            return cls.TEXT_TO_MESH


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(raw: Any) -> datetime | None:
    """Parse an ISO-8601 string (or epoch seconds) into an aware UTC datetime."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        dt = raw
    elif isinstance(raw, (int, float)):
        try:
            return datetime.fromtimestamp(float(raw), tz=timezone.utc)
        except (OverflowError, OSError) as e:
            raise ValueError(f"timestamp out of range: {raw!r}") from e
    else:
        dt = datetime.fromisoformat(str(raw).strip().replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_timestamp(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt is not None else None


@dataclass(slots=True)
class TaskResult:
    output_path: str | None = None
    download_url: str | None = None
    preview_image_url: str | None = None
    file_size: float | None = None
    format: str | None = None
    metadata: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "output_path": self.output_path,
            "download_url": self.download_url,
            "preview_image_url": self.preview_image_url,
            "file_size": self.file_size,
            "format": self.format,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TaskResult:
        metadata = data.get("metadata")
        file_size = data.get("file_size")
        return cls(
            output_path=data.get("output_path"),
            download_url=data.get("download_url"),
            preview_image_url=data.get("preview_image_url"),
            file_size=float(file_size) if file_size is not None else None,
            format=data.get("format"),
            metadata=metadata if isinstance(metadata, dict) else None,
        )


@dataclass(slots=True)
class Task:
    id: str
    type: TaskType
    name: str
    status: TaskStatus
    created_at: datetime

    job_id: str | None = None
    progress: int = 0
    input_data: dict[str, Any] = field(default_factory=dict)

    completed_at: datetime | None = None
    processing_time: float | None = None
    result: TaskResult | None = None
    error: str | None = None

    input_image_url: str | None = None
    model_preference: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "type": self.type.value,
            "name": self.name,
            "status": self.status.value,
            "created_at": format_timestamp(self.created_at),
            "completed_at": format_timestamp(self.completed_at),
            "processing_time": self.processing_time,
            "progress": self.progress,
            "input_data": self.input_data,
            "result": self.result.to_dict() if self.result is not None else None,
            "error": self.error,
            "input_image_url": self.input_image_url,
            "model_preference": self.model_preference,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Task:
        """Inverse of to_dict. Raises KeyError/ValueError/TypeError on malformed input."""
        created_at = parse_timestamp(data["created_at"])
        if created_at is None:
            raise ValueError("created_at is required")
        result = data.get("result")
        input_data = data.get("input_data")
        processing_time = data.get("processing_time")
        return cls(
            id=str(data["id"]),
            job_id=data.get("job_id"),
            type=TaskType.from_stored(data.get("type")),
            name=str(data.get("name") or ""),
            status=TaskStatus(data["status"]),
            created_at=created_at,
            completed_at=parse_timestamp(data.get("completed_at")),
            processing_time=float(processing_time) if processing_time is not None else None,
            progress=int(data.get("progress") or 0),
            input_data=input_data if isinstance(input_data, dict) else {},
            result=TaskResult.from_dict(result) if isinstance(result, dict) else None,
            error=data.get("error"),
            input_image_url=data.get("input_image_url"),
            model_preference=data.get("model_preference"),
        )


@dataclass(slots=True, frozen=True)
class NewTask:
    """What a feature panel hands over after a successful submission."""

    type: TaskType
    name: str
    job_id: str | None = None
    status: TaskStatus = TaskStatus.QUEUED
    progress: int = 0
    input_data: dict[str, Any] = field(default_factory=dict)
    input_image_url: str | None = None
    model_preference: str | None = None


@dataclass(slots=True, frozen=True)
class TaskPatch:
    """
    Partial update for one task. None means "leave unchanged".

    completed_at may only accompany a terminal status (or be set on a task
    that is already terminal, which apply_patch checks).
    """

    status: TaskStatus | None = None
    job_id: str | None = None
    progress: int | None = None
    completed_at: datetime | None = None
    processing_time: float | None = None
    result: TaskResult | None = None
    error: str | None = None
    input_image_url: str | None = None
    model_preference: str | None = None

    def __post_init__(self) -> None:
        if self.completed_at is not None and self.status is not None and not self.status.is_terminal:
            raise InvalidTaskPatch(
                f"completed_at cannot be set together with non-terminal status {self.status.value}"
            )
        if self.result is not None and self.status is not None and self.status is not TaskStatus.COMPLETED:
            raise InvalidTaskPatch("result can only be set with status completed")
        if self.error is not None and self.status is not None and self.status is not TaskStatus.FAILED:
            raise InvalidTaskPatch("error can only be set with status failed")
        if self.progress is not None and not 0 <= self.progress <= 100:
            raise InvalidTaskPatch(f"progress out of range: {self.progress}")

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))


def apply_patch(task: Task, patch: TaskPatch, *, now: datetime | None = None) -> Task:
    """
    Return a new Task with the patch applied.

    - input_image_url / model_preference are write-once.
    - entering a terminal status stamps completed_at (patch value or now).
    - leaving a terminal status (retry) clears completion fields and progress.
    """
    new_status = patch.status if patch.status is not None else task.status

    if patch.completed_at is not None and not new_status.is_terminal:
        raise InvalidTaskPatch("completed_at requires a terminal status")
    if patch.result is not None and new_status is not TaskStatus.COMPLETED:
        raise InvalidTaskPatch("result requires status completed")
    if patch.error is not None and new_status is not TaskStatus.FAILED:
        raise InvalidTaskPatch("error requires status failed")

    updated = replace(
        task,
        status=new_status,
        job_id=patch.job_id if patch.job_id is not None else task.job_id,
        progress=patch.progress if patch.progress is not None else task.progress,
        processing_time=(
            patch.processing_time if patch.processing_time is not None else task.processing_time
        ),
        result=patch.result if patch.result is not None else task.result,
        error=patch.error if patch.error is not None else task.error,
        completed_at=patch.completed_at if patch.completed_at is not None else task.completed_at,
        input_image_url=task.input_image_url or patch.input_image_url,
        model_preference=task.model_preference or patch.model_preference,
    )

    if new_status.is_terminal:
        if updated.completed_at is None:
            updated.completed_at = now or utcnow()
        # A completed task carries no failure reason and a failed one no result.
        if new_status is TaskStatus.COMPLETED:
            updated.error = None
        else:
            updated.result = None
    elif task.status.is_terminal:
        updated.completed_at = None
        updated.processing_time = None
        updated.result = None
        updated.error = None
        updated.progress = patch.progress if patch.progress is not None else 0

    return updated
