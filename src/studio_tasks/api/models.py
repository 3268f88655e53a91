# src/studio_tasks/api/models.py

"""Wire shapes of the remote job service (only the fields the tracker reads)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..tasks.task_models import TaskStatus, parse_timestamp

logger = logging.getLogger(__name__)


def _opt_str(value: Any) -> str | None:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _opt_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


@dataclass(slots=True, frozen=True)
class JobResult:
    mesh_url: str | None = None
    output_mesh_path: str | None = None
    thumbnail_url: str | None = None
    thumbnail_path: str | None = None
    generation_info: dict[str, Any] | None = None

    @property
    def mesh_location(self) -> str | None:
        return self.mesh_url or self.output_mesh_path

    @property
    def thumbnail_location(self) -> str | None:
        return self.thumbnail_url or self.thumbnail_path

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JobResult:
        info = data.get("generation_info")
        return cls(
            mesh_url=_opt_str(data.get("mesh_url")),
            output_mesh_path=_opt_str(data.get("output_mesh_path")),
            thumbnail_url=_opt_str(data.get("thumbnail_url")),
            thumbnail_path=_opt_str(data.get("thumbnail_path")),
            generation_info=info if isinstance(info, dict) else None,
        )


@dataclass(slots=True, frozen=True)
class JobInfo:
    job_id: str
    status: TaskStatus
    created_at: datetime | None = None
    completed_at: datetime | None = None
    processing_time: float | None = None
    model_preference: str | None = None
    input_image_url: str | None = None
    result: JobResult | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JobInfo:
        result = data.get("result")
        return cls(
            job_id=str(data.get("job_id") or ""),
            status=TaskStatus.from_remote(data.get("status")),
            created_at=parse_timestamp(data.get("created_at")),
            completed_at=parse_timestamp(data.get("completed_at")),
            processing_time=_opt_float(data.get("processing_time")),
            model_preference=_opt_str(data.get("model_preference")),
            input_image_url=_opt_str(data.get("input_image_url")),
            result=JobResult.from_dict(result) if isinstance(result, dict) else None,
        )


@dataclass(slots=True, frozen=True)
class JobResultInfo:
    job_id: str
    downloadable_url: str | None = None
    file_size: float | None = None
    file_extension: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JobResultInfo:
        urls = _dict(data.get("mesh_download_urls"))
        file_info = _dict(data.get("file_info"))
        return cls(
            job_id=str(data.get("job_id") or ""),
            downloadable_url=_opt_str(urls.get("direct_download")),
            file_size=_opt_float(file_info.get("file_size_mb")),
            file_extension=_opt_str(file_info.get("file_extension")),
        )


@dataclass(slots=True, frozen=True)
class HistoricalJob:
    job_id: str
    status: TaskStatus
    feature: str
    created_at: datetime
    completed_at: datetime | None = None
    processing_time: float | None = None
    model_preference: str | None = None
    output_mesh_path: str | None = None
    mesh_url: str | None = None
    thumbnail_path: str | None = None
    thumbnail_url: str | None = None
    input_image_url: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistoricalJob:
        """Raises ValueError when job_id or created_at is missing."""
        job_id = _opt_str(data.get("job_id"))
        created_at = parse_timestamp(data.get("created_at"))
        if job_id is None or created_at is None:
            raise ValueError("historical job needs job_id and created_at")
        return cls(
            job_id=job_id,
            status=TaskStatus.from_remote(data.get("status")),
            feature=str(data.get("feature") or ""),
            created_at=created_at,
            completed_at=parse_timestamp(data.get("completed_at")),
            processing_time=_opt_float(data.get("processing_time")),
            model_preference=_opt_str(data.get("model_preference")),
            output_mesh_path=_opt_str(data.get("output_mesh_path")),
            mesh_url=_opt_str(data.get("mesh_url")),
            thumbnail_path=_opt_str(data.get("thumbnail_path")),
            thumbnail_url=_opt_str(data.get("thumbnail_url")),
            input_image_url=_opt_str(data.get("input_image_url")),
        )


@dataclass(slots=True, frozen=True)
class JobsHistoryParams:
    limit: int = 100
    offset: int = 0
    status: TaskStatus | None = None
    feature: str | None = None
    start_date: str | None = None
    end_date: str | None = None

    def to_query(self) -> dict[str, str | int]:
        query: dict[str, str | int] = {"limit": self.limit, "offset": self.offset}
        if self.status is not None:
            query["status"] = self.status.value
        if self.feature:
            query["feature"] = self.feature
        if self.start_date:
            query["start_date"] = self.start_date
        if self.end_date:
            query["end_date"] = self.end_date
        return query


@dataclass(slots=True, frozen=True)
class JobsHistoryPage:
    jobs: list[HistoricalJob] = field(default_factory=list)
    total: int = 0
    has_more: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JobsHistoryPage:
        jobs: list[HistoricalJob] = []
        for raw in data.get("jobs") or []:
            if not isinstance(raw, dict):
                continue
            try:
                jobs.append(HistoricalJob.from_dict(raw))
            except (TypeError, ValueError, OverflowError, OSError):
                logger.warning("Skipping malformed history job %r", raw.get("job_id"))
                continue
        pagination = _dict(data.get("pagination"))
        return cls(
            jobs=jobs,
            total=int(pagination.get("total") or len(jobs)),
            has_more=bool(pagination.get("has_more", False)),
        )
