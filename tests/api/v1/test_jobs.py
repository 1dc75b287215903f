"""
Tests for the jobs API endpoints.
"""

import re
import uuid
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.services.scheduling.engine import ScheduleNotFoundError

TIMESTAMP = re.compile(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}$")


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client
        test_client.delete("/api/v1/jobs")


@pytest.fixture
def payload():
    def _build(**overrides):
        data = {
            "name": "hourly-hook",
            "triggerType": "interval",
            "expression": "3600",
            "httpMethod": "POST",
            "httpTargetUrl": "https://example.com/hook",
        }
        data.update(overrides)
        return data

    return _build


def create(client, data):
    response = client.post("/api/v1/jobs", json={"data": data})
    assert response.status_code == 200, response.text
    return response.json()["data"]


def error_details(response):
    body = response.json()
    assert set(body) == {"errors"}
    for error in body["errors"]:
        assert error["status"] == response.status_code
    return [error["detail"] for error in body["errors"]]


class TestCreateJob:
    def test_create(self, client, payload):
        job = create(client, payload(jsonWebToken="abc", httpRequestBody="{}"))

        assert job["jobKey"] is not None
        assert job["status"] == 1
        assert job["name"] == "hourly-hook"
        assert job["triggerType"] == "interval"
        assert job["httpTargetUrl"] == "https://example.com/hook"
        assert job["jsonWebToken"] == "abc"
        assert uuid.UUID(job["jobId"]).version == 4
        assert TIMESTAMP.match(job["creationTime"])
        assert TIMESTAMP.match(job["updateTime"])
        assert app.state.scheduler.lookup(job["jobKey"]).action.job_id == job["jobId"]

    def test_target_url_is_stored_as_given(self, client, payload):
        job = create(client, payload(httpTargetUrl="https://example.com/hook?a=1&b=two"))
        assert job["httpTargetUrl"] == "https://example.com/hook?a=1&b=two"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"triggerType": "weekly"},
            {"triggerType": "cron", "expression": "every day"},
            {"triggerType": "interval", "expression": "-5"},
            {"triggerType": "once", "expression": "soon"},
            {"httpMethod": "PATCH"},
            {"httpTargetUrl": "not a url"},
            {"httpTargetUrl": "ftp://example.com/file"},
            {"name": ""},
            {"name": "x" * 33},
        ],
    )
    def test_invalid_fields(self, client, payload, overrides):
        response = client.post("/api/v1/jobs", json={"data": payload(**overrides)})

        assert response.status_code == 400
        assert error_details(response)
        assert app.state.scheduler.job_count() == 0

    def test_missing_envelope(self, client, payload):
        response = client.post("/api/v1/jobs", json=payload())
        assert response.status_code == 400


class TestReadJobs:
    def test_get_job(self, client, payload):
        job = create(client, payload())

        response = client.get(f"/api/v1/jobs/{job['jobId']}")

        assert response.status_code == 200
        assert response.json()["data"] == job

    def test_get_unknown_job(self, client):
        response = client.get(f"/api/v1/jobs/{uuid.uuid4()}")

        assert response.status_code == 404
        assert "not found" in error_details(response)[0].lower()

    @pytest.mark.parametrize("job_id", ["abc", str(uuid.uuid1())])
    def test_job_id_must_be_uuid4(self, client, job_id):
        response = client.get(f"/api/v1/jobs/{job_id}")
        assert response.status_code == 400

    def test_list_jobs(self, client, payload):
        for index in range(3):
            create(client, payload(name=f"hook-{index}"))

        response = client.get("/api/v1/jobs", params={"from": 1, "size": 1})

        body = response.json()
        assert response.status_code == 200
        assert len(body["data"]) == 1
        assert body["meta"] == {"from": 1, "size": 1, "total": 3}

    def test_list_size_zero_means_all(self, client, payload):
        for index in range(3):
            create(client, payload(name=f"hook-{index}"))

        body = client.get("/api/v1/jobs", params={"from": 0, "size": 0}).json()

        assert len(body["data"]) == 3
        assert body["meta"] == {"from": 0, "size": 3, "total": 3}

    def test_list_size_reports_returned_count(self, client, payload):
        for index in range(3):
            create(client, payload(name=f"hook-{index}"))

        body = client.get("/api/v1/jobs", params={"from": 2, "size": 10}).json()

        assert len(body["data"]) == 1
        assert body["meta"] == {"from": 2, "size": 1, "total": 3}

    def test_list_rejects_negative_offset(self, client):
        assert client.get("/api/v1/jobs", params={"from": -1}).status_code == 400


class TestReplaceJob:
    def test_disable_clears_live_schedule(self, client, payload):
        job = create(client, payload())

        response = client.put(
            f"/api/v1/jobs/{job['jobId']}", json={"desire": payload(status=2)}
        )

        replaced = response.json()["data"]
        assert response.status_code == 200
        assert replaced["jobKey"] is None
        assert replaced["status"] == 2
        with pytest.raises(ScheduleNotFoundError):
            app.state.scheduler.lookup(job["jobKey"])

    def test_replace_enabled(self, client, payload):
        job = create(client, payload())

        replaced = client.put(
            f"/api/v1/jobs/{job['jobId']}",
            json={"desire": payload(status=1, triggerType="cron", expression="0 9 * * *")},
        ).json()["data"]

        assert replaced["jobKey"] is not None
        assert replaced["jobKey"] != job["jobKey"]
        assert replaced["expression"] == "0 9 * * *"

    @pytest.mark.parametrize("status", [0, 3, "enabled"])
    def test_status_must_be_enabled_or_disabled(self, client, payload, status):
        job = create(client, payload())

        response = client.put(
            f"/api/v1/jobs/{job['jobId']}", json={"desire": payload(status=status)}
        )

        assert response.status_code == 400

    def test_replace_unknown_job(self, client, payload):
        response = client.put(
            f"/api/v1/jobs/{uuid.uuid4()}", json={"desire": payload(status=1)}
        )
        assert response.status_code == 404


class TestDeleteJobs:
    def test_delete_twice(self, client, payload):
        job = create(client, payload())

        first = client.delete(f"/api/v1/jobs/{job['jobId']}")
        second = client.delete(f"/api/v1/jobs/{job['jobId']}")

        assert first.status_code == 200
        assert first.json() == {}
        assert second.status_code == 404
        assert app.state.scheduler.job_count() == 0

    def test_delete_all(self, client, payload):
        for index in range(3):
            create(client, payload(name=f"hook-{index}"))

        response = client.delete("/api/v1/jobs")

        assert response.status_code == 200
        assert client.get("/api/v1/jobs").json()["data"] == []
        assert app.state.scheduler.job_count() == 0


class TestServiceEndpoints:
    def test_health_reports_scheduler(self, client):
        body = client.get("/health").json()

        assert body["status"] == "ok"
        assert body["scheduler"]["status"] == "running"
        assert body["database"]["healthy"] is True

    def test_health_degraded_when_storage_fails(self, client):
        with patch.object(
            app.state.lifecycle.repository,
            "health_check",
            return_value={"healthy": False, "error": "database is locked"},
        ):
            body = client.get("/health").json()

        assert body["status"] == "degraded"
        assert body["database"]["healthy"] is False

    def test_metrics_exposed(self, client, payload):
        create(client, payload())

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "scheduler_lifecycle_operations_total" in response.text
