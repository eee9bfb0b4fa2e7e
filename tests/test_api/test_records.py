"""Tests for generation record endpoints."""

import asyncio
import uuid

import pytest
from httpx import AsyncClient

from app.models.record import ProcessingStage

pytestmark = pytest.mark.asyncio


class TestSubmitGeneration:
    """Tests for POST /api/records."""

    async def test_accepts_and_completes(self, client: AsyncClient, services):
        """Should return 202 immediately and finish in the background."""
        response = await client.post(
            "/api/records",
            json={"repository": "https://github.com/acme/widgets", "window": {"preset": "1day"}},
        )

        assert response.status_code == 202
        data = response.json()
        assert data["stage"] in {s.value for s in ProcessingStage}
        record_id = data["id"]

        await services.runner.join()
        response = await client.get(f"/api/records/{record_id}")

        assert response.status_code == 200
        record = response.json()
        assert record["repo_name"] == "acme/widgets"
        assert record["stage"] == "completed"
        assert record["window_label"] == "Last 24 hours"
        assert record["content"].startswith("# acme/widgets")
        assert record["artifact_url"] == "https://render-bucket.example.com/renders/out.mp4"

    async def test_invalid_repository(self, client: AsyncClient):
        """Should reject malformed repository references."""
        response = await client.post("/api/records", json={"repository": "not a repo"})
        assert response.status_code == 422

    async def test_invalid_window(self, client: AsyncClient):
        """Should reject custom windows without a start."""
        response = await client.post(
            "/api/records", json={"repository": "acme/widgets", "window": {"mode": "custom"}}
        )
        assert response.status_code == 422

    async def test_conflicting_filters(self, client: AsyncClient):
        """Should reject a label that is both included and excluded."""
        response = await client.post(
            "/api/records",
            json={
                "repository": "acme/widgets",
                "window": {"include_labels": ["bug"], "exclude_labels": ["bug"]},
            },
        )
        assert response.status_code == 422

    async def test_release_window_accepted(self, client: AsyncClient, services):
        """Should accept release selections and label the record by release."""
        response = await client.post(
            "/api/records",
            json={
                "repository": "acme/widgets",
                "window": {
                    "mode": "release",
                    "releases": [{"tag": "v1.1", "previous_tag": "v1.0", "name": "Spring"}],
                },
            },
        )
        assert response.status_code == 202
        await services.runner.join()

        record = (await client.get(f"/api/records/{response.json()['id']}")).json()
        assert record["window_label"] == "Releases Spring"
        assert record["stage"] == "completed"


class TestGetRecords:
    """Tests for GET /api/records and GET /api/records/{id}."""

    async def test_unknown_record(self, client: AsyncClient):
        """Should return 404 for unknown ids."""
        response = await client.get(f"/api/records/{uuid.uuid4()}")
        assert response.status_code == 404

    async def test_list_recent(self, client: AsyncClient, record_factory):
        """Should list stored records."""
        first = await record_factory(repo_name="acme/one")
        second = await record_factory(repo_name="acme/two")

        response = await client.get("/api/records")

        assert response.status_code == 200
        ids = {r["id"] for r in response.json()}
        assert ids == {str(first.id), str(second.id)}


class TestHighlights:
    """Tests for PUT /api/records/{id}/highlights."""

    async def test_set_and_clear(self, client: AsyncClient, record_factory):
        """Should store the override and clear it with an empty list."""
        record = await record_factory(stage=ProcessingStage.COMPLETED)
        url = f"/api/records/{record.id}/highlights"

        response = await client.put(
            url, json={"highlights": [{"title": "Login", "description": "OAuth support"}]}
        )
        assert response.status_code == 200
        assert response.json()["manual_highlights"] == [
            {"title": "Login", "description": "OAuth support"}
        ]

        response = await client.put(url, json={"highlights": []})
        assert response.status_code == 200
        assert response.json()["manual_highlights"] is None

    async def test_more_than_three_rejected(self, client: AsyncClient, record_factory):
        """Should reject more than three highlights."""
        record = await record_factory(stage=ProcessingStage.COMPLETED)
        response = await client.put(
            f"/api/records/{record.id}/highlights",
            json={"highlights": [{"title": f"H{i}"} for i in range(4)]},
        )
        assert response.status_code == 422


class TestRegenerateVideo:
    """Tests for POST /api/records/{id}/video and GET /api/records/{id}/render."""

    async def test_returns_job(self, client: AsyncClient, services, record_factory, make_summary):
        """Should accept the render as a job and complete it."""
        record = await record_factory(
            stage=ProcessingStage.COMPLETED, summaries=[make_summary("Add login")]
        )

        response = await client.post(f"/api/records/{record.id}/video", json={"force": True})

        assert response.status_code == 202
        job_id = response.json()["jobId"]
        await services.runner.join()

        job = (await client.get(f"/api/jobs/{job_id}")).json()
        assert job["status"] == "completed"
        assert job["type"] == "render-video"

        render = await client.get(f"/api/records/{record.id}/render")
        assert render.status_code == 200
        assert render.json()["status"] == "succeeded"

    async def test_second_render_conflicts(
        self, client: AsyncClient, services, render_backend, record_factory, make_summary
    ):
        """Should return 409 while a render job is active."""
        record = await record_factory(stage=ProcessingStage.COMPLETED, summaries=[make_summary()])
        render_backend.gate = asyncio.Event()

        first = await client.post(f"/api/records/{record.id}/video", json={"force": True})
        second = await client.post(f"/api/records/{record.id}/video", json={"force": True})
        render_backend.gate.set()
        await services.runner.join()

        assert first.status_code == 202
        assert second.status_code == 409

    async def test_no_render_yet(self, client: AsyncClient, record_factory):
        """Should return 404 when the record was never rendered."""
        record = await record_factory(stage=ProcessingStage.COMPLETED)
        response = await client.get(f"/api/records/{record.id}/render")
        assert response.status_code == 404
