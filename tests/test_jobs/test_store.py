"""Tests for the SQL-backed job store."""

import asyncio
from datetime import timedelta

import pytest

from app.core.datetime_utils import utc_now
from app.core.errors import JobStateError
from app.jobs.store import SqlJobStore
from app.jobs.tracker import JobTracker
from app.models.job import JobStatus, JobType

pytestmark = pytest.mark.asyncio


@pytest.fixture
def tracker(session_factory, webhooks) -> JobTracker:
    return JobTracker(SqlJobStore(session_factory), webhook_sender=webhooks)


class TestSqlJobStore:
    """Tests for SqlJobStore through the tracker."""

    async def test_state_survives_new_sessions(self, tracker):
        """Should persist every update to the database."""
        job = await tracker.create(JobType.RENDER_VIDEO, {"record_id": "r1"}, record_id="r1")
        await tracker.start(job.id)
        await tracker.update(job.id, progress=40)
        await tracker.complete(job.id, {"artifact_url": "https://cdn/v.mp4"})

        stored = await tracker.get(job.id)
        assert stored.status is JobStatus.COMPLETED
        assert stored.progress == 100
        assert stored.result == {"artifact_url": "https://cdn/v.mp4"}
        assert stored.params == {"record_id": "r1"}
        assert stored.completed_at is not None

    async def test_cancel_then_complete_rejected(self, tracker):
        """Should keep a cancelled job cancelled across sessions."""
        job = await tracker.create(JobType.PROCESS_RECORD)
        await tracker.cancel(job.id)
        await tracker.complete(job.id, {"late": True})

        stored = await tracker.get(job.id)
        assert stored.status is JobStatus.CANCELLED
        assert stored.result is None

    async def test_list_filters(self, tracker):
        """Should filter by type and status in SQL."""
        a = await tracker.create(JobType.PROCESS_RECORD)
        b = await tracker.create(JobType.RENDER_VIDEO)
        await tracker.fail(b.id, "boom")

        failed = await tracker.list(status=JobStatus.FAILED)
        assert [j.id for j in failed] == [b.id]
        process = await tracker.list(type=JobType.PROCESS_RECORD)
        assert [j.id for j in process] == [a.id]

    async def test_find_active(self, tracker):
        """Should return the active job for a record."""
        job = await tracker.create(JobType.RENDER_VIDEO, record_id="r9")
        found = await tracker.find_active_for_record("r9", JobType.RENDER_VIDEO)
        assert found.id == job.id

    async def test_delete_finished_before(self, tracker):
        """Should delete terminal jobs finished before the cutoff."""
        job = await tracker.create(JobType.PROCESS_RECORD)
        await tracker.complete(job.id)
        running = await tracker.create(JobType.PROCESS_RECORD)

        deleted = await tracker.store.delete_finished_before(utc_now() + timedelta(seconds=1))

        assert deleted == 1
        assert [j.id for j in await tracker.list()] == [running.id]


class CancellingJobStore(SqlJobStore):
    """Cancels the job from another session right before each conditional write."""

    async def update_if_active(self, job_id, values):
        now = utc_now()
        await super().update_if_active(
            job_id, {"status": JobStatus.CANCELLED, "completed_at": now, "updated_at": now}
        )
        return await super().update_if_active(job_id, values)


class TestConcurrentTerminalWrites:
    """Tests for completion and cancellation racing on the SQL store."""

    async def test_cancel_lands_between_read_and_write(self, session_factory, webhooks):
        """Should keep the job cancelled and send no webhook when completion loses."""
        tracker = JobTracker(CancellingJobStore(session_factory), webhook_sender=webhooks)
        job = await tracker.create(JobType.RENDER_VIDEO, callback_url="https://hooks.example/j")

        returned = await tracker.complete(job.id, {"artifact_url": "https://cdn/v.mp4"})

        assert returned.status is JobStatus.CANCELLED
        stored = await tracker.get(job.id)
        assert stored.status is JobStatus.CANCELLED
        assert stored.result is None
        assert webhooks.sent == []

    async def test_complete_and_cancel_gathered(self, tracker, webhooks):
        """Should end in one consistent terminal status whichever write wins."""
        job = await tracker.create(JobType.RENDER_VIDEO, callback_url="https://hooks.example/j")
        await tracker.start(job.id)

        completed, cancelled = await asyncio.gather(
            tracker.complete(job.id, {"artifact_url": "https://cdn/v.mp4"}),
            tracker.cancel(job.id),
            return_exceptions=True,
        )

        stored = await tracker.get(job.id)
        if stored.status is JobStatus.COMPLETED:
            assert isinstance(cancelled, JobStateError)
            assert stored.result == {"artifact_url": "https://cdn/v.mp4"}
            assert [p.status for _, p in webhooks.sent] == [JobStatus.COMPLETED]
        else:
            assert stored.status is JobStatus.CANCELLED
            assert completed.status is JobStatus.CANCELLED
            assert stored.result is None
            assert webhooks.sent == []

    async def test_update_if_active_skips_terminal_rows(self, tracker):
        """Should match zero rows once the job is terminal."""
        job = await tracker.create(JobType.PROCESS_RECORD)
        await tracker.fail(job.id, "boom")

        assert await tracker.store.update_if_active(job.id, {"progress": 50}) is None
        stored = await tracker.get(job.id)
        assert stored.status is JobStatus.FAILED
        assert stored.progress == 0
