# src/studio_tasks/api/client.py

from __future__ import annotations

import asyncio
import logging
from typing import Any
from urllib.parse import quote

import httpx

from ..errors import RemoteFetchError
from .models import JobInfo, JobResultInfo, JobsHistoryPage, JobsHistoryParams

logger = logging.getLogger(__name__)

JOB_STATUS_ROUTE = "/api/v1/system/jobs/{job_id}"
JOB_RESULT_INFO_ROUTE = "/api/v1/system/jobs/{job_id}/info"
JOB_DOWNLOAD_ROUTE = "/api/v1/system/jobs/{job_id}/download"
JOBS_HISTORY_ROUTE = "/api/v1/system/jobs/history"

_RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class StudioApiClient:
    """
    Async client for the three read-only job endpoints the tracker consumes.

    Every request has a bounded timeout and up to max_retries extra attempts
    (exponential backoff) on transport errors, 429 and 5xx. Anything still
    failing is raised as RemoteFetchError.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout_seconds: float = 30.0,
        connect_timeout_seconds: float = 5.0,
        max_retries: int = 2,
        retry_backoff_seconds: float = 0.5,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = httpx.Timeout(
            timeout_seconds,
            connect=connect_timeout_seconds,
            pool=connect_timeout_seconds,
        )
        self._max_retries = max(0, int(max_retries))
        self._backoff = max(0.0, float(retry_backoff_seconds))
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings, *, token: str | None = None) -> StudioApiClient:
        return cls(
            settings.api_base_url,
            token=token if token is not None else settings.api_token,
            timeout_seconds=settings.api_timeout_seconds,
            connect_timeout_seconds=settings.api_connect_timeout_seconds,
            max_retries=settings.api_max_retries,
            retry_backoff_seconds=settings.api_retry_backoff_seconds,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    def set_token(self, token: str | None) -> None:
        self._token = token

    def download_url(self, job_id: str) -> str:
        return self._base_url + JOB_DOWNLOAD_ROUTE.format(job_id=quote(job_id, safe=""))

    # ---- endpoints ----

    async def get_job_status(self, job_id: str) -> JobInfo:
        data = await self._get_json(JOB_STATUS_ROUTE.format(job_id=quote(job_id, safe="")))
        return self._parse(JobInfo.from_dict, data, "job status")

    async def get_job_result_info(self, job_id: str) -> JobResultInfo:
        data = await self._get_json(JOB_RESULT_INFO_ROUTE.format(job_id=quote(job_id, safe="")))
        return self._parse(JobResultInfo.from_dict, data, "job result info")

    async def get_jobs_history(self, params: JobsHistoryParams | None = None) -> JobsHistoryPage:
        params = params or JobsHistoryParams()
        data = await self._get_json(JOBS_HISTORY_ROUTE, params=params.to_query())
        return self._parse(JobsHistoryPage.from_dict, data, "jobs history")

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ---- transport ----

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    @staticmethod
    def _parse(parser, data: Any, what: str):
        if not isinstance(data, dict):
            raise RemoteFetchError(f"unexpected {what} payload: {type(data).__name__}")
        try:
            return parser(data)
        except (TypeError, ValueError, OverflowError, OSError) as e:
            raise RemoteFetchError(f"malformed {what} payload: {e}") from e

    async def _get_json(self, path: str, *, params: dict[str, Any] | None = None) -> Any:
        client = self._get_client()
        attempts = self._max_retries + 1
        last_error: RemoteFetchError | None = None

        for attempt in range(attempts):
            if attempt:
                await asyncio.sleep(self._backoff * (2 ** (attempt - 1)))
            try:
                resp = await client.get(path, params=params, headers=self._headers())
            except httpx.TransportError as e:
                last_error = RemoteFetchError(f"GET {path} failed: {e!r}")
                logger.debug("GET %s attempt %d/%d failed: %r", path, attempt + 1, attempts, e)
                continue
            except httpx.HTTPError as e:
                # Body decoding and redirect errors do not improve on retry.
                raise RemoteFetchError(f"GET {path} failed: {e!r}") from e

            if resp.status_code in _RETRYABLE_STATUS:
                last_error = RemoteFetchError(
                    f"GET {path} returned HTTP {resp.status_code}", status_code=resp.status_code
                )
                logger.debug(
                    "GET %s attempt %d/%d returned HTTP %s",
                    path,
                    attempt + 1,
                    attempts,
                    resp.status_code,
                )
                continue

            if resp.status_code >= 400:
                raise RemoteFetchError(
                    f"GET {path} returned HTTP {resp.status_code}", status_code=resp.status_code
                )

            try:
                return resp.json()
            except ValueError as e:
                raise RemoteFetchError(f"GET {path} returned invalid JSON") from e

        assert last_error is not None
        raise last_error
