"""Tests for async job endpoints."""

import pytest
from httpx import AsyncClient

from app.models.job import JobType

pytestmark = pytest.mark.asyncio


class TestCreateJob:
    """Tests for POST /api/jobs."""

    async def test_unknown_type_fails(self, client: AsyncClient, services):
        """Should accept the job and fail it with an explicit error."""
        response = await client.post("/api/jobs", json={"type": "send-fax", "params": {}})

        assert response.status_code == 202
        job = response.json()
        assert job["status"] == "queued"
        assert job["progress"] == 0

        await services.runner.join()
        job = (await client.get(f"/api/jobs/{job['id']}")).json()
        assert job["status"] == "failed"
        assert job["error"] == "Unknown job type: send-fax"

    async def test_process_record_job(self, client: AsyncClient, services):
        """Should run a process-record job to completion."""
        response = await client.post(
            "/api/jobs",
            json={"type": "process-record", "params": {"repository": "acme/widgets"}},
        )
        await services.runner.join()

        job = (await client.get(f"/api/jobs/{response.json()['id']}")).json()
        assert job["status"] == "completed"
        assert job["progress"] == 100
        assert job["result"]["stage"] == "completed"


class TestListJobs:
    """Tests for GET /api/jobs."""

    async def test_filters(self, client: AsyncClient, services):
        """Should filter by type and status."""
        queued = await services.tracker.create(JobType.PROCESS_RECORD)
        failed = await services.tracker.create(JobType.RENDER_VIDEO)
        await services.tracker.fail(failed.id, "boom")

        by_status = (await client.get("/api/jobs", params={"status": "failed"})).json()
        by_type = (await client.get("/api/jobs", params={"type": "process-record"})).json()

        assert [j["id"] for j in by_status] == [failed.id]
        assert [j["id"] for j in by_type] == [queued.id]

    async def test_unknown_job(self, client: AsyncClient):
        """Should return 404 for unknown ids."""
        response = await client.get("/api/jobs/job_missing")
        assert response.status_code == 404

    async def test_schedules_empty_without_scheduler(self, client: AsyncClient):
        """Should list no schedules when the scheduler is not running."""
        response = await client.get("/api/jobs/schedules")
        assert response.status_code == 200
        assert response.json() == []


class TestCancelJob:
    """Tests for POST /api/jobs/{id}/cancel."""

    async def test_cancel_queued(self, client: AsyncClient, services):
        """Should cancel a queued job."""
        job = await services.tracker.create(JobType.RENDER_VIDEO)

        response = await client.post(f"/api/jobs/{job.id}/cancel")

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

    async def test_cancel_finished_conflicts(self, client: AsyncClient, services):
        """Should return 409 for finished jobs."""
        job = await services.tracker.create(JobType.RENDER_VIDEO)
        await services.tracker.complete(job.id)

        response = await client.post(f"/api/jobs/{job.id}/cancel")

        assert response.status_code == 409
