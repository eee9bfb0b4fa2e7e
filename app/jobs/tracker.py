"""Generic async job lifecycle: create, progress, complete, cancel, notify."""

from collections.abc import Awaitable, Callable
from typing import Any

from app.core.datetime_utils import get_cutoff, to_iso_utc, utc_now
from app.core.errors import JobNotFoundError, JobStateError, truncate_error
from app.core.logging import get_logger
from app.jobs.store import JobStore
from app.jobs.webhook import deliver_webhook
from app.models.job import AsyncJob, JobStatus, JobType, generate_job_id
from app.schemas.job import WebhookPayload

logger = get_logger(__name__)

WebhookSender = Callable[[str, WebhookPayload], Awaitable[bool]]

ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.QUEUED: frozenset(
        {JobStatus.PROCESSING, JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
    ),
    JobStatus.PROCESSING: frozenset(
        {JobStatus.PROCESSING, JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
    ),
}

NOTIFY_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED)


class JobTracker:
    """
    Tracks AsyncJob state over an injected JobStore.

    Updates to terminal jobs are ignored rather than rejected so duplicate
    completion signals from concurrent paths are harmless. Entering completed
    or failed triggers one webhook POST when the job has a callback URL.
    """

    def __init__(
        self,
        store: JobStore,
        webhook_sender: WebhookSender | None = None,
    ):
        self.store = store
        self._send_webhook = webhook_sender or deliver_webhook

    async def create(
        self,
        type: JobType | str,
        params: dict[str, Any] | None = None,
        callback_url: str | None = None,
        record_id: str | None = None,
    ) -> AsyncJob:
        now = utc_now()
        job = AsyncJob(
            id=generate_job_id(),
            type=type.value if isinstance(type, JobType) else type,
            status=JobStatus.QUEUED,
            progress=0,
            params=params or {},
            callback_url=callback_url,
            record_id=record_id,
            created_at=now,
            updated_at=now,
        )
        job = await self.store.add(job)
        logger.bind(job_id=job.id, type=job.type, record_id=record_id).info("job_created")
        return job

    async def get(self, job_id: str) -> AsyncJob:
        job = await self.store.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job

    async def update(
        self,
        job_id: str,
        status: JobStatus | None = None,
        progress: int | None = None,
        result: Any = None,
        error: str | None = None,
    ) -> AsyncJob:
        """
        Apply a partial update.

        Returns the job unchanged if it is already terminal, including when a
        concurrent write made it terminal after it was read. ``result`` is only
        accepted with status=completed and ``error`` only with status=failed.
        Progress is clamped to 0..100 and never moves backwards.

        Raises:
            JobNotFoundError: Unknown job id
            JobStateError: Illegal transition or result/error without its status
        """
        job = await self.get(job_id)
        log = logger.bind(job_id=job_id, type=job.type)

        if job.status.is_terminal:
            log.bind(status=job.status.value).debug("job_update_ignored_terminal")
            return job

        if result is not None and status is not JobStatus.COMPLETED:
            raise JobStateError("result is only accepted with status=completed")
        if error is not None and status is not JobStatus.FAILED:
            raise JobStateError("error is only accepted with status=failed")

        values: dict[str, Any] = {}
        target = job.status
        if status is not None and status is not job.status:
            if status not in ALLOWED_TRANSITIONS[job.status]:
                raise JobStateError(
                    f"Cannot move job {job_id} from {job.status.value} to {status.value}"
                )
            target = values["status"] = status

        if progress is not None:
            values["progress"] = max(job.progress or 0, min(100, max(0, int(progress))))

        now = utc_now()
        if target is JobStatus.COMPLETED:
            values["progress"] = 100
            values["result"] = result
        elif target is JobStatus.FAILED:
            values["error"] = truncate_error(error or "Job failed")
        if target.is_terminal:
            values["completed_at"] = now
        values["updated_at"] = now

        updated = await self.store.update_if_active(job_id, values)
        if updated is None:
            job = await self.get(job_id)
            log.bind(status=job.status.value).debug("job_update_ignored_terminal")
            return job
        job = updated
        log.bind(status=job.status.value, progress=job.progress).debug("job_updated")

        if job.status in NOTIFY_STATUSES:
            log.bind(status=job.status.value).info("job_finished")
            await self._notify(job)
        return job

    async def start(self, job_id: str) -> AsyncJob:
        return await self.update(job_id, status=JobStatus.PROCESSING)

    async def complete(self, job_id: str, result: Any = None) -> AsyncJob:
        return await self.update(job_id, status=JobStatus.COMPLETED, result=result)

    async def fail(self, job_id: str, error: str | BaseException) -> AsyncJob:
        return await self.update(job_id, status=JobStatus.FAILED, error=str(error))

    async def cancel(self, job_id: str) -> AsyncJob:
        """
        Cancel a queued or processing job.

        Cancellation is cooperative: running handlers notice it through
        ``is_cancelled`` and stop committing progress.

        Raises:
            JobStateError: The job is already terminal
        """
        job = await self.get(job_id)
        if job.status.is_terminal:
            raise JobStateError(f"Job {job_id} is already {job.status.value}")

        now = utc_now()
        cancelled = await self.store.update_if_active(
            job_id, {"status": JobStatus.CANCELLED, "completed_at": now, "updated_at": now}
        )
        if cancelled is None:
            job = await self.get(job_id)
            raise JobStateError(f"Job {job_id} is already {job.status.value}")
        logger.bind(job_id=job_id, type=cancelled.type).info("job_cancelled")
        return cancelled

    async def is_cancelled(self, job_id: str) -> bool:
        job = await self.store.get(job_id)
        return job is not None and job.status is JobStatus.CANCELLED

    async def list(
        self,
        type: JobType | str | None = None,
        status: JobStatus | None = None,
        limit: int = 50,
    ) -> list[AsyncJob]:
        """Jobs matching the filters, newest first."""
        type_value = type.value if isinstance(type, JobType) else type
        return await self.store.list(type=type_value, status=status, limit=limit)

    async def find_active_for_record(
        self, record_id: str, type: JobType | None = None, exclude_id: str | None = None
    ) -> AsyncJob | None:
        return await self.store.find_active(
            record_id, type.value if type else None, exclude_id=exclude_id
        )

    async def cleanup(self, older_than_hours: int = 24) -> int:
        """Delete terminal jobs that finished more than ``older_than_hours`` ago."""
        deleted = await self.store.delete_finished_before(get_cutoff(hours=older_than_hours))
        logger.bind(deleted=deleted, older_than_hours=older_than_hours).info("jobs_cleaned_up")
        return deleted

    async def _notify(self, job: AsyncJob) -> None:
        if not job.callback_url:
            return
        payload = WebhookPayload(
            job_id=job.id,
            type=job.type,
            status=job.status,
            result=job.result,
            error=job.error,
            completed_at=to_iso_utc(job.completed_at or utc_now()),
        )
        try:
            await self._send_webhook(job.callback_url, payload)
        except Exception as e:
            logger.bind(job_id=job.id, error=str(e)).warning("job_webhook_failed")
