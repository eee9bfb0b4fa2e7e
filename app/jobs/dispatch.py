"""
Async job dispatch.

A single routing table maps job types to handlers. Jobs are created through
``JobDispatcher.submit`` and executed on the background task runner; unknown
types fail explicitly instead of completing silently.
"""

import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import ValidationError

from app.core.errors import (
    InvalidRequestError,
    JobCancelledError,
    RenderInProgressError,
    RenderTriggerError,
)
from app.core.logging import get_logger
from app.core.tasks import BackgroundTaskRunner
from app.jobs.tracker import JobTracker
from app.models.job import AsyncJob, JobStatus, JobType
from app.models.record import ProcessingStage
from app.models.render import RenderStatus
from app.pipeline.controller import PipelineController
from app.pipeline.highlights import derive_narrative
from app.render.orchestrator import RenderOrchestrator
from app.schemas.record import GenerationRequest
from app.schemas.render import RenderOptions
from app.services.records import RecordStore, manual_highlights_of, summaries_of

logger = get_logger(__name__)

Handler = Callable[[AsyncJob], Awaitable[Any]]


def _record_id_param(job: AsyncJob) -> uuid.UUID:
    raw = (job.params or {}).get("record_id") or job.record_id
    if not raw:
        raise InvalidRequestError(f"{job.type} job requires params.record_id")
    try:
        return uuid.UUID(str(raw))
    except ValueError as e:
        raise InvalidRequestError(f"Invalid record_id: {raw!r}") from e


class JobDispatcher:
    """Creates jobs, runs them in the background and routes them by type."""

    def __init__(
        self,
        tracker: JobTracker,
        runner: BackgroundTaskRunner,
        controller: PipelineController,
        records: RecordStore,
        orchestrator: RenderOrchestrator | None,
    ):
        self.tracker = tracker
        self.runner = runner
        self.controller = controller
        self.records = records
        self.orchestrator = orchestrator
        self.handlers: dict[str, Handler] = {
            JobType.PROCESS_RECORD.value: self._process_record,
            JobType.RENDER_VIDEO.value: self._render_video,
            JobType.EXTRACT_HIGHLIGHTS.value: self._extract_highlights,
        }

    async def submit(
        self,
        type: JobType | str,
        params: dict[str, Any] | None = None,
        callback_url: str | None = None,
        record_id: str | None = None,
    ) -> AsyncJob:
        """Create a queued job and start it in the background."""
        job = await self.tracker.create(type, params, callback_url=callback_url, record_id=record_id)
        self.runner.submit(self.dispatch_job(job.id), name=f"job:{job.type}:{job.id}")
        return job

    async def regenerate_video(
        self, record_id: uuid.UUID, force: bool = False, callback_url: str | None = None
    ) -> AsyncJob:
        """
        Queue a render-video job for an existing record.

        Stats and summaries are not recomputed, and the record's stage is left
        untouched.

        Raises:
            RecordNotFoundError: Unknown record
            RenderInProgressError: The record already has an active render or render job
        """
        if self.orchestrator is None:
            raise InvalidRequestError("Video rendering is not configured")
        await self.records.get(record_id)

        active_job = await self.tracker.find_active_for_record(str(record_id), JobType.RENDER_VIDEO)
        if active_job is not None:
            raise RenderInProgressError(
                f"Render job {active_job.id} already running for record {record_id}"
            )
        if await self.orchestrator.has_active_render(record_id):
            raise RenderInProgressError(f"A render is already in progress for record {record_id}")

        return await self.submit(
            JobType.RENDER_VIDEO,
            {"record_id": str(record_id), "force": force},
            callback_url=callback_url,
            record_id=str(record_id),
        )

    async def dispatch_job(self, job_id: str) -> AsyncJob:
        """
        Run one job to a terminal status.

        Handler exceptions fail the job with a bounded error message. A job
        cancelled while its handler runs stays cancelled.
        """
        job = await self.tracker.get(job_id)
        log = logger.bind(job_id=job.id, type=job.type)

        if job.status is not JobStatus.QUEUED:
            log.bind(status=job.status.value).info("job_dispatch_skipped")
            return job

        handler = self.handlers.get(job.type)
        if handler is None:
            log.error("job_type_unknown")
            return await self.tracker.fail(job.id, f"Unknown job type: {job.type}")

        await self.tracker.start(job.id)
        log.info("job_started")
        try:
            result = await handler(job)
        except JobCancelledError:
            log.info("job_handler_stopped_cancelled")
            return await self.tracker.get(job.id)
        except Exception as e:
            log.bind(error=str(e), error_type=type(e).__name__).error("job_handler_failed")
            return await self.tracker.fail(job.id, e)

        return await self.tracker.complete(job.id, result)

    async def _report(self, job: AsyncJob, progress: int) -> None:
        if await self.tracker.is_cancelled(job.id):
            raise JobCancelledError(f"Job {job.id} was cancelled")
        await self.tracker.update(job.id, progress=progress)

    async def _process_record(self, job: AsyncJob) -> dict[str, Any]:
        params = job.params or {}
        if params.get("record_id"):
            record_id = _record_id_param(job)
            await self._check_runnable(record_id, job)
        else:
            try:
                request = GenerationRequest.model_validate(params)
            except ValidationError as e:
                raise InvalidRequestError(f"Invalid process-record params: {e}") from e
            record = await self.controller.create(request)
            record_id = record.id

        stage = await self.controller.run(record_id, job_id=job.id)
        if await self.tracker.is_cancelled(job.id):
            raise JobCancelledError(f"Job {job.id} was cancelled")
        if stage is ProcessingStage.FAILED:
            record = await self.records.get(record_id)
            raise RuntimeError(record.error_message or "Generation failed")
        return {"record_id": str(record_id), "stage": stage.value}

    async def _check_runnable(self, record_id: uuid.UUID, job: AsyncJob) -> None:
        """Only a pending record with no other process-record job can be run."""
        record = await self.records.get(record_id)
        if record.stage is not ProcessingStage.PENDING:
            raise InvalidRequestError(
                f"Record {record_id} is {record.stage.value}, only pending records can run"
            )
        other = await self.tracker.find_active_for_record(
            str(record_id), JobType.PROCESS_RECORD, exclude_id=job.id
        )
        if other is not None:
            raise InvalidRequestError(
                f"Record {record_id} is already being processed by job {other.id}"
            )

    async def _render_video(self, job: AsyncJob) -> dict[str, Any]:
        if self.orchestrator is None:
            raise InvalidRequestError("Video rendering is not configured")
        record_id = _record_id_param(job)
        force = bool((job.params or {}).get("force", False))

        state = await self.orchestrator.start_render(
            record_id, RenderOptions(reuse_existing=True, force=force)
        )
        if state.reused:
            return {"record_id": str(record_id), "artifact_url": state.artifact_url, "reused": True}

        try:
            await self._report(job, 10)
            # Backend progress 0..100 maps onto job progress 10..95
            state = await self.orchestrator.wait_for_render(
                state.id, on_progress=lambda p: self._report(job, 10 + p * 85 // 100)
            )
        except JobCancelledError:
            # Nothing polls this render once its job stops
            await self.orchestrator.abandon_render(state.id, "Render cancelled")
            raise
        if state.status is not RenderStatus.SUCCEEDED:
            raise RenderTriggerError(state.error_message or "Render failed")
        return {"record_id": str(record_id), "artifact_url": state.artifact_url, "reused": False}

    async def _extract_highlights(self, job: AsyncJob) -> dict[str, Any]:
        record_id = _record_id_param(job)
        record = await self.records.get(record_id)
        narrative = await derive_narrative(
            manual=manual_highlights_of(record),
            content=record.content,
            summaries=summaries_of(record),
            repo_name=record.repo_name,
            summarizer=self.controller.summarizer,
            min_content_length=self.controller.min_content_length,
        )
        await self.records.save_narrative(record_id, narrative)
        return narrative.model_dump(mode="json")
