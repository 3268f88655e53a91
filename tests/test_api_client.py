# tests/test_api_client.py

from __future__ import annotations

import httpx
import pytest

from studio_tasks.api.client import StudioApiClient
from studio_tasks.api.models import JobsHistoryParams
from studio_tasks.errors import RemoteFetchError
from studio_tasks.tasks.task_models import TaskStatus

from .fakes import BASE_URL, T0


class Recorder:
    """MockTransport handler that replays canned responses and records requests."""

    def __init__(self, *responses) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item


def _client(handler: Recorder, *, token: str | None = None, max_retries: int = 2) -> StudioApiClient:
    return StudioApiClient(
        BASE_URL,
        token=token,
        max_retries=max_retries,
        retry_backoff_seconds=0.0,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_job_status_is_parsed() -> None:
    handler = Recorder(
        httpx.Response(
            200,
            json={
                "job_id": "j1",
                "status": "completed",
                "created_at": "2026-01-01T12:00:00Z",
                "processing_time": "3.5",
                "model_preference": "fast",
                "result": {
                    "output_mesh_path": "/outputs/j1.glb",
                    "thumbnail_url": "http://cdn.test/j1.png",
                    "generation_info": {"seed": 1},
                },
            },
        )
    )
    api = _client(handler, token="tok")

    info = await api.get_job_status("j1")
    await api.aclose()

    assert info.status is TaskStatus.COMPLETED
    assert info.created_at == T0
    assert info.processing_time == 3.5
    assert info.model_preference == "fast"
    assert info.result is not None
    assert info.result.mesh_location == "/outputs/j1.glb"
    assert info.result.thumbnail_location == "http://cdn.test/j1.png"

    request = handler.requests[0]
    assert request.url.path == "/api/v1/system/jobs/j1"
    assert request.headers["Authorization"] == "Bearer tok"


@pytest.mark.asyncio
async def test_unknown_remote_status_maps_to_queued() -> None:
    api = _client(Recorder(httpx.Response(200, json={"job_id": "j1", "status": "pending"})))
    info = await api.get_job_status("j1")
    assert info.status is TaskStatus.QUEUED


@pytest.mark.asyncio
async def test_anonymous_requests_carry_no_auth_header() -> None:
    handler = Recorder(httpx.Response(200, json={"job_id": "j1", "status": "queued"}))
    api = _client(handler)
    await api.get_job_status("j1")
    assert "Authorization" not in handler.requests[0].headers


@pytest.mark.asyncio
async def test_result_info_is_parsed() -> None:
    handler = Recorder(
        httpx.Response(
            200,
            json={
                "job_id": "j1",
                "mesh_download_urls": {"direct_download": "http://cdn.test/j1.glb"},
                "file_info": {"file_size_mb": 4.2, "file_extension": "glb"},
            },
        )
    )
    api = _client(handler)

    info = await api.get_job_result_info("j1")

    assert handler.requests[0].url.path == "/api/v1/system/jobs/j1/info"
    assert info.downloadable_url == "http://cdn.test/j1.glb"
    assert info.file_size == 4.2
    assert info.file_extension == "glb"


@pytest.mark.asyncio
async def test_history_sends_query_and_skips_broken_jobs() -> None:
    handler = Recorder(
        httpx.Response(
            200,
            json={
                "jobs": [
                    {
                        "job_id": "j1",
                        "status": "completed",
                        "feature": "auto_rig",
                        "created_at": "2026-01-01T12:00:00Z",
                    },
                    {"job_id": "j2", "status": "failed"},
                    "garbage",
                ],
                "pagination": {"total": 3, "has_more": False},
            },
        )
    )
    api = _client(handler)

    page = await api.get_jobs_history(JobsHistoryParams(limit=25))

    request = handler.requests[0]
    assert request.url.path == "/api/v1/system/jobs/history"
    assert request.url.params["limit"] == "25"
    assert request.url.params["offset"] == "0"
    assert "status" not in request.url.params
    assert [j.job_id for j in page.jobs] == ["j1"]
    assert page.jobs[0].feature == "auto_rig"
    assert page.total == 3


@pytest.mark.asyncio
async def test_retryable_status_is_retried_then_succeeds() -> None:
    handler = Recorder(
        httpx.Response(503),
        httpx.Response(429),
        httpx.Response(200, json={"job_id": "j1", "status": "processing"}),
    )
    api = _client(handler, max_retries=2)

    info = await api.get_job_status("j1")

    assert info.status is TaskStatus.PROCESSING
    assert len(handler.requests) == 3


@pytest.mark.asyncio
async def test_client_error_is_not_retried() -> None:
    handler = Recorder(httpx.Response(404, json={"detail": "not found"}))
    api = _client(handler, max_retries=3)

    with pytest.raises(RemoteFetchError) as excinfo:
        await api.get_job_status("missing")

    assert excinfo.value.status_code == 404
    assert len(handler.requests) == 1


@pytest.mark.asyncio
async def test_transport_errors_exhaust_retries() -> None:
    handler = Recorder(httpx.ConnectError("connection refused"))
    api = _client(handler, max_retries=1)

    with pytest.raises(RemoteFetchError):
        await api.get_job_status("j1")

    assert len(handler.requests) == 2


@pytest.mark.asyncio
async def test_invalid_json_is_a_fetch_error() -> None:
    api = _client(Recorder(httpx.Response(200, content=b"<html>oops</html>")))
    with pytest.raises(RemoteFetchError):
        await api.get_job_status("j1")


def test_download_url_is_built_from_base_url() -> None:
    api = StudioApiClient(BASE_URL + "/")
    assert api.download_url("job 1") == f"{BASE_URL}/api/v1/system/jobs/job%201/download"


@pytest.mark.asyncio
async def test_non_transport_http_errors_are_wrapped_without_retry() -> None:
    handler = Recorder(httpx.TooManyRedirects("redirect loop"))
    api = _client(handler, max_retries=3)

    with pytest.raises(RemoteFetchError):
        await api.get_job_result_info("j1")

    assert len(handler.requests) == 1


@pytest.mark.asyncio
async def test_history_skips_jobs_with_out_of_range_timestamps() -> None:
    handler = Recorder(
        httpx.Response(
            200,
            json={
                "jobs": [
                    {"job_id": "j1", "status": "completed", "created_at": 1e20},
                    {
                        "job_id": "j2",
                        "status": "failed",
                        "created_at": "2026-01-01T12:00:00Z",
                        "completed_at": -1e20,
                    },
                    {"job_id": "j3", "status": "queued", "created_at": 1767268800},
                ],
            },
        )
    )
    api = _client(handler)

    page = await api.get_jobs_history()

    assert [j.job_id for j in page.jobs] == ["j3"]
    assert page.jobs[0].created_at == T0


@pytest.mark.asyncio
async def test_out_of_range_status_timestamp_is_a_fetch_error() -> None:
    api = _client(Recorder(httpx.Response(200, json={"job_id": "j1", "status": "queued", "created_at": 1e20})))
    with pytest.raises(RemoteFetchError):
        await api.get_job_status("j1")
