"""
HTTP dispatch action.

The unit of work bound to a live schedule: one outbound HTTP request per
firing. Failures are recorded in the returned outcome, logged and counted,
but never raised back into the scheduler engine.
"""

import asyncio
import threading
import time
from dataclasses import dataclass
from typing import Dict, Optional

import httpx

from app.core.config import settings
from app.models.scheduling import ScheduleJob, TriggerType
from app.services.metrics import DISPATCH_LATENCY_SECONDS, DISPATCH_TOTAL
from app.utils.error_handler import ErrorCategory, ErrorSeverity, SchedulerServiceError
from app.utils.logger import get_logger

from .repository import JobRepository

logger = get_logger(__name__)


class DispatchFailure(SchedulerServiceError):
    """Outbound request failed or returned a status >= 400"""

    status_code = 502
    severity = ErrorSeverity.MEDIUM
    category = ErrorCategory.NETWORK


@dataclass
class DispatchOutcome:
    """Result of one firing"""

    status_code: Optional[int] = None
    error: Optional[Exception] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class HttpJobRequest:
    """The request a job issues, captured when the job is scheduled"""

    job_id: str
    trigger_type: str
    http_method: str
    http_target_url: str
    http_request_body: str = ""
    json_web_token: str = ""

    @classmethod
    def from_job(cls, job: ScheduleJob) -> "HttpJobRequest":
        return cls(
            job_id=job.job_id,
            trigger_type=job.trigger_type,
            http_method=job.http_method,
            http_target_url=job.http_target_url,
            http_request_body=job.http_request_body or "",
            json_web_token=job.json_web_token or "",
        )

    @property
    def is_once(self) -> bool:
        return self.trigger_type == TriggerType.ONCE.value


class HttpDispatchAction:
    """Issues the configured HTTP request of a job when its trigger fires."""

    def __init__(
        self,
        request: HttpJobRequest,
        repository: JobRepository,
        client: httpx.AsyncClient,
        content_type: Optional[str] = None,
        guard: Optional[threading.Lock] = None,
    ):
        self.request = request
        self.repository = repository
        self.client = client
        self.content_type = content_type or settings.DISPATCH_CONTENT_TYPE
        # Serializes the one-shot status write with lifecycle changes
        self.guard = guard or threading.Lock()

    @property
    def job_id(self) -> str:
        return self.request.job_id

    @staticmethod
    def parse_target_url(raw_url: str) -> httpx.URL:
        """Parse the target; the scheme decides between plain HTTP and TLS."""
        url = httpx.URL(raw_url)
        if url.scheme not in ("http", "https") or not url.host:
            raise httpx.UnsupportedProtocol(f"Unsupported target URL: {raw_url!r}")
        return url

    def build_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": self.content_type}
        if self.request.json_web_token:
            headers["Authorization"] = f"Bearer {self.request.json_web_token}"
        return headers

    def _mark_done(self, handle: int) -> bool:
        with self.guard:
            return self.repository.mark_job_done(self.request.job_id, handle)

    async def execute(self, handle: int) -> DispatchOutcome:
        """
        Run one firing of the live schedule ``handle``.

        One-shot jobs are marked Done before the request goes out. If that
        write fails the firing is abandoned; the write is not retried. A job
        that was replaced or deleted after this firing began keeps its newer
        record, and the request is still sent.
        """
        request = self.request
        method = request.http_method

        if request.is_once:
            try:
                await asyncio.to_thread(self._mark_done, handle)
            except Exception as e:
                logger.error(
                    "Failed to mark one-shot job done, firing aborted",
                    job_id=request.job_id,
                    job_key=handle,
                    error=str(e),
                )
                DISPATCH_TOTAL.labels(outcome="status_write_failed", method=method).inc()
                return DispatchOutcome(error=e)

        start = time.perf_counter()
        try:
            url = self.parse_target_url(request.http_target_url)
            response = await self.client.request(
                method,
                url,
                content=request.http_request_body.encode("utf-8"),
                headers=self.build_headers(),
            )
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            DISPATCH_TOTAL.labels(outcome="transport_error", method=method).inc()
            logger.error(
                "Job dispatch failed",
                job_id=request.job_id,
                method=method,
                url=request.http_target_url,
                error_type=type(e).__name__,
                error=str(e),
            )
            return DispatchOutcome(
                error=DispatchFailure(
                    f"{method} {request.http_target_url} failed: {e}",
                    {"job_id": request.job_id},
                )
            )
        finally:
            DISPATCH_LATENCY_SECONDS.labels(method=method).observe(
                time.perf_counter() - start
            )

        if response.status_code >= 400:
            DISPATCH_TOTAL.labels(outcome="http_error", method=method).inc()
            logger.warning(
                "Job target returned an error status",
                job_id=request.job_id,
                method=method,
                url=request.http_target_url,
                status_code=response.status_code,
                response_text=response.text,
            )
            return DispatchOutcome(
                status_code=response.status_code,
                error=DispatchFailure(
                    f"{method} {request.http_target_url} returned {response.status_code}",
                    {"job_id": request.job_id, "status_code": response.status_code},
                ),
            )

        DISPATCH_TOTAL.labels(outcome="success", method=method).inc()
        logger.info(
            "Job dispatched",
            job_id=request.job_id,
            method=method,
            status_code=response.status_code,
        )
        return DispatchOutcome(status_code=response.status_code)

    def __repr__(self) -> str:
        return (
            f"HttpDispatchAction({self.request.job_id!r}, "
            f"{self.request.http_method} {self.request.http_target_url})"
        )
