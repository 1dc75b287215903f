"""
Tests for the HTTP dispatch action.
"""

import asyncio
import threading
from unittest.mock import Mock

import httpx
import pytest
from prometheus_client import REGISTRY

from app.models.scheduling import JobStatus
from app.services.scheduling.dispatch import (
    DispatchFailure,
    DispatchOutcome,
    HttpDispatchAction,
    HttpJobRequest,
)
from app.services.scheduling.repository import JobRepository, JobStorageError, epoch_now


HANDLE = 7


def make_request(**overrides) -> HttpJobRequest:
    values = {
        "job_id": "4a0c1b4e-9a39-4a55-9d3e-5b2f0d8f1c11",
        "trigger_type": "interval",
        "http_method": "POST",
        "http_target_url": "https://example.com/hook?source=scheduler&n=1",
        "http_request_body": "raw body",
        "json_web_token": "secret-token",
    }
    values.update(overrides)
    return HttpJobRequest(**values)


def dispatch_count(outcome: str, method: str) -> float:
    value = REGISTRY.get_sample_value(
        "scheduler_dispatch_total", {"outcome": outcome, "method": method}
    )
    return value or 0.0


class TestRequestComposition:
    @pytest.mark.asyncio
    async def test_sends_method_url_body_and_headers(self, http_client, sent_requests):
        action = HttpDispatchAction(make_request(), Mock(spec=JobRepository), http_client)

        outcome = await action.execute(HANDLE)

        assert outcome == DispatchOutcome(status_code=200)
        assert outcome.succeeded
        assert len(sent_requests) == 1

        sent = sent_requests[0]
        assert sent.method == "POST"
        assert sent.url.scheme == "https"
        assert sent.url.host == "example.com"
        assert sent.url.path == "/hook"
        assert sent.url.params["source"] == "scheduler"
        assert sent.url.params["n"] == "1"
        assert sent.content == b"raw body"
        assert sent.headers["Authorization"] == "Bearer secret-token"
        assert sent.headers["Content-Type"] == "application/octet-stream"

    @pytest.mark.asyncio
    async def test_no_authorization_without_token(self, http_client, sent_requests):
        request = make_request(json_web_token="", http_method="GET", http_request_body="")
        action = HttpDispatchAction(request, Mock(spec=JobRepository), http_client)

        await action.execute(HANDLE)

        sent = sent_requests[0]
        assert sent.method == "GET"
        assert "Authorization" not in sent.headers
        assert sent.headers["Content-Type"] == "application/octet-stream"

    @pytest.mark.asyncio
    async def test_plain_http_target(self, http_client, sent_requests):
        request = make_request(http_target_url="http://internal.local:8080/run")
        action = HttpDispatchAction(request, Mock(spec=JobRepository), http_client)

        await action.execute(HANDLE)

        assert sent_requests[0].url.scheme == "http"
        assert sent_requests[0].url.port == 8080

    def test_job_id_exposed_for_logging(self, http_client):
        action = HttpDispatchAction(make_request(), Mock(spec=JobRepository), http_client)
        assert action.job_id == "4a0c1b4e-9a39-4a55-9d3e-5b2f0d8f1c11"


class TestOutcomes:
    @pytest.mark.asyncio
    async def test_error_status_is_recorded_not_raised(
        self, http_client, target_status, sent_requests
    ):
        target_status["code"] = 503
        before = dispatch_count("http_error", "PUT")
        action = HttpDispatchAction(
            make_request(http_method="PUT"), Mock(spec=JobRepository), http_client
        )

        outcome = await action.execute(HANDLE)

        assert outcome.status_code == 503
        assert isinstance(outcome.error, DispatchFailure)
        assert not outcome.succeeded
        assert len(sent_requests) == 1
        assert dispatch_count("http_error", "PUT") == before + 1

    @pytest.mark.asyncio
    async def test_redirect_status_counts_as_success(self, http_client, target_status):
        target_status["code"] = 302
        action = HttpDispatchAction(make_request(), Mock(spec=JobRepository), http_client)

        outcome = await action.execute(HANDLE)

        assert outcome.status_code == 302
        assert outcome.succeeded

    @pytest.mark.asyncio
    async def test_transport_error_is_recorded_not_raised(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        before = dispatch_count("transport_error", "DELETE")
        action = HttpDispatchAction(
            make_request(http_method="DELETE"), Mock(spec=JobRepository), client
        )

        outcome = await action.execute(HANDLE)
        await client.aclose()

        assert outcome.status_code is None
        assert isinstance(outcome.error, DispatchFailure)
        assert dispatch_count("transport_error", "DELETE") == before + 1

    @pytest.mark.asyncio
    async def test_malformed_url_is_recorded_not_raised(self, http_client, sent_requests):
        request = make_request(http_target_url="ftp://example.com/file")
        action = HttpDispatchAction(request, Mock(spec=JobRepository), http_client)

        outcome = await action.execute(HANDLE)

        assert isinstance(outcome.error, DispatchFailure)
        assert sent_requests == []


class TestOnceJobs:
    @pytest.mark.asyncio
    async def test_marks_done_before_request(self, repository, http_client, sent_requests):
        now = epoch_now()
        job = repository.create_job(
            {
                "job_id": "4a0c1b4e-9a39-4a55-9d3e-5b2f0d8f1c11",
                "job_key": HANDLE,
                "status": JobStatus.ENABLED.value,
                "name": "one-shot",
                "trigger_type": "once",
                "expression": "0",
                "http_method": "POST",
                "http_target_url": "https://example.com/hook",
                "http_request_body": "",
                "json_web_token": "",
                "creation_time": now,
                "update_time": now,
            }
        )
        statuses_seen = []
        original_request = http_client.request

        async def spy_request(*args, **kwargs):
            statuses_seen.append(repository.get_job(job.job_id).status)
            return await original_request(*args, **kwargs)

        http_client.request = spy_request
        action = HttpDispatchAction(
            HttpJobRequest.from_job(job), repository, http_client
        )

        outcome = await action.execute(HANDLE)

        assert outcome.succeeded
        assert statuses_seen == [JobStatus.DONE.value]
        stored = repository.get_job(job.job_id)
        assert stored.status == JobStatus.DONE.value
        assert stored.job_key is None
        assert len(sent_requests) == 1

    @pytest.mark.asyncio
    async def test_replaced_job_keeps_its_newer_record(
        self, repository, http_client, sent_requests
    ):
        now = epoch_now()
        job = repository.create_job(
            {
                "job_id": "4a0c1b4e-9a39-4a55-9d3e-5b2f0d8f1c11",
                "job_key": HANDLE + 1,
                "status": JobStatus.ENABLED.value,
                "name": "re-enabled",
                "trigger_type": "interval",
                "expression": "3600",
                "http_method": "POST",
                "http_target_url": "https://example.com/hook",
                "http_request_body": "",
                "json_web_token": "",
                "creation_time": now,
                "update_time": now,
            }
        )
        # A one-shot firing of the previous version, still in flight
        action = HttpDispatchAction(
            make_request(job_id=job.job_id, trigger_type="once"), repository, http_client
        )

        outcome = await action.execute(HANDLE)

        assert outcome.succeeded
        stored = repository.get_job(job.job_id)
        assert stored.status == JobStatus.ENABLED.value
        assert stored.job_key == HANDLE + 1
        assert len(sent_requests) == 1

    @pytest.mark.asyncio
    async def test_status_write_waits_for_guard(self, http_client, sent_requests):
        guard = threading.Lock()
        repository = Mock(spec=JobRepository)
        repository.mark_job_done.return_value = True
        action = HttpDispatchAction(
            make_request(trigger_type="once"), repository, http_client, guard=guard
        )

        guard.acquire()
        try:
            firing = asyncio.create_task(action.execute(HANDLE))
            await asyncio.sleep(0.1)
            repository.mark_job_done.assert_not_called()
            assert sent_requests == []
        finally:
            guard.release()

        outcome = await asyncio.wait_for(firing, timeout=5)

        assert outcome.succeeded
        repository.mark_job_done.assert_called_once_with(
            "4a0c1b4e-9a39-4a55-9d3e-5b2f0d8f1c11", HANDLE
        )
        assert len(sent_requests) == 1

    @pytest.mark.asyncio
    async def test_failed_status_write_aborts_firing(self, http_client, sent_requests):
        repository = Mock(spec=JobRepository)
        repository.mark_job_done.side_effect = JobStorageError("database is locked")
        before = dispatch_count("status_write_failed", "POST")
        action = HttpDispatchAction(
            make_request(trigger_type="once"), repository, http_client
        )

        outcome = await action.execute(HANDLE)

        assert isinstance(outcome.error, JobStorageError)
        assert outcome.status_code is None
        assert sent_requests == []
        repository.mark_job_done.assert_called_once_with(
            "4a0c1b4e-9a39-4a55-9d3e-5b2f0d8f1c11", HANDLE
        )
        assert dispatch_count("status_write_failed", "POST") == before + 1

    @pytest.mark.asyncio
    async def test_recurring_jobs_do_not_touch_storage(self, http_client):
        repository = Mock(spec=JobRepository)
        action = HttpDispatchAction(make_request(trigger_type="cron"), repository, http_client)

        await action.execute(HANDLE)

        repository.mark_job_done.assert_not_called()
