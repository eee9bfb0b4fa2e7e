"""
Generation pipeline controller.

Sequences one record through its stages:

    pending -> fetching_stats -> analyzing_commits -> generating_content
            -> generating_video -> completed

Any stage may end in ``failed``. Each stage is persisted before its work
starts, so pollers always see what the pipeline is doing right now.
"""

import uuid

from app.core.errors import (
    JobCancelledError,
    RenderInProgressError,
    RenderTimeoutError,
    RenderTriggerError,
    SummarizationError,
)
from app.core.logging import get_logger
from app.core.tasks import BackgroundTaskRunner
from app.jobs.tracker import JobTracker
from app.models.record import GenerationRecord, ProcessingStage
from app.models.render import RenderStatus
from app.pipeline.content import (
    assemble_content,
    build_fallback_overview,
    change_stats_from,
    select_top_commits,
)
from app.pipeline.highlights import derive_narrative
from app.pipeline.interfaces import StatsFetcher, Summarizer
from app.render.orchestrator import RenderOrchestrator
from app.schemas.github import RepoRef, RepoStats
from app.schemas.record import CommitSummary, GenerationRequest
from app.schemas.render import RenderOptions
from app.services.records import RecordStore, manual_highlights_of, time_window_of

logger = get_logger(__name__)

STAGE_PROGRESS: dict[ProcessingStage, int] = {
    ProcessingStage.FETCHING_STATS: 10,
    ProcessingStage.ANALYZING_COMMITS: 30,
    ProcessingStage.GENERATING_CONTENT: 60,
    ProcessingStage.GENERATING_VIDEO: 75,
    ProcessingStage.COMPLETED: 100,
}


class PipelineController:
    """Runs generation records through the pipeline, one task per record."""

    def __init__(
        self,
        records: RecordStore,
        fetcher: StatsFetcher,
        summarizer: Summarizer,
        orchestrator: RenderOrchestrator | None,
        runner: BackgroundTaskRunner,
        tracker: JobTracker | None = None,
        top_commits: int = 10,
        recent_commit_titles: int = 10,
        min_content_length: int = 100,
        reuse_renders: bool = True,
    ):
        self.records = records
        self.fetcher = fetcher
        self.summarizer = summarizer
        self.orchestrator = orchestrator
        self.runner = runner
        self.tracker = tracker
        self.top_commits = top_commits
        self.recent_commit_titles = recent_commit_titles
        self.min_content_length = min_content_length
        self.reuse_renders = reuse_renders

    async def create(self, request: GenerationRequest) -> GenerationRecord:
        """Validate a request and persist a pending record without running it."""
        repo = RepoRef.parse(request.repository)
        return await self.records.create(repo, request.window, request.branch)

    async def submit(self, request: GenerationRequest) -> uuid.UUID:
        """
        Persist a pending record and start its pipeline in the background.

        Returns immediately with the record id; progress is observed by
        polling the record.

        Raises:
            InvalidRequestError: Malformed repository reference
        """
        record = await self.create(request)
        self.runner.submit(self.run(record.id), name=f"pipeline:{record.id}")
        return record.id

    async def _enter(
        self,
        record_id: uuid.UUID,
        stage: ProcessingStage,
        message: str,
        job_id: str | None,
    ) -> None:
        if job_id and self.tracker:
            if await self.tracker.is_cancelled(job_id):
                raise JobCancelledError(f"Job {job_id} was cancelled")
        await self.records.advance(record_id, stage, message)
        if job_id and self.tracker:
            await self.tracker.update(job_id, progress=STAGE_PROGRESS[stage])

    async def _claim(self, record_id: uuid.UUID, job_id: str | None) -> bool:
        if job_id and self.tracker:
            if await self.tracker.is_cancelled(job_id):
                raise JobCancelledError(f"Job {job_id} was cancelled")
        if not await self.records.claim(record_id, "Fetching repository statistics"):
            return False
        if job_id and self.tracker:
            await self.tracker.update(
                job_id, progress=STAGE_PROGRESS[ProcessingStage.FETCHING_STATS]
            )
        return True

    async def run(self, record_id: uuid.UUID, job_id: str | None = None) -> ProcessingStage:
        """
        Execute every stage for ``record_id``.

        Pipeline failures are persisted on the record and do not raise; the
        final stage is returned. A record that is no longer pending belongs to
        another run and is returned untouched.

        Args:
            record_id: Pending record to process
            job_id: Owning process-record job, if any; receives progress and is
                checked for cancellation between stages
        """
        log = logger.bind(record_id=str(record_id))
        log.info("pipeline_started")

        try:
            record = await self.records.get(record_id)
            if record.stage is not ProcessingStage.PENDING or not await self._claim(
                record_id, job_id
            ):
                current = (await self.records.get(record_id)).stage
                log.bind(stage=current.value).warning("pipeline_skipped_not_pending")
                return current
            repo = RepoRef.parse(record.repo_name)
            window = time_window_of(record)

            stats = await self.fetcher.fetch(repo, window, record.branch)

            await self._enter(
                record_id,
                ProcessingStage.ANALYZING_COMMITS,
                f"Analyzing {min(len(stats.commit_details), self.top_commits)} of {stats.commits} commits",
                job_id,
            )
            summaries, overview, degraded = await self._analyze(record, stats)

            content_message = "Assembling changelog"
            if degraded:
                content_message += " (AI unavailable, using template)"
            await self._enter(record_id, ProcessingStage.GENERATING_CONTENT, content_message, job_id)
            content = assemble_content(overview, summaries)
            record = await self.records.save_content(
                record_id, content, stats, change_stats_from(stats), summaries
            )

            await self._enter(
                record_id, ProcessingStage.GENERATING_VIDEO, "Preparing video", job_id
            )
            video_note = await self._generate_video(record, content, summaries)

            await self._enter(
                record_id, ProcessingStage.COMPLETED, f"Changelog ready ({video_note})", job_id
            )
            log.bind(degraded=degraded, video=video_note).info("pipeline_completed")
            return ProcessingStage.COMPLETED

        except JobCancelledError as e:
            log.bind(job_id=job_id).warning("pipeline_cancelled")
            await self._fail(record_id, f"Generation cancelled: {e}")
            return ProcessingStage.FAILED
        except Exception as e:
            log.bind(error=str(e), error_type=type(e).__name__).error("pipeline_failed")
            await self._fail(record_id, e)
            return ProcessingStage.FAILED

    async def _fail(self, record_id: uuid.UUID, error: str | BaseException) -> None:
        try:
            await self.records.mark_failed(record_id, error)
        except Exception as e:
            # Nothing else can record the failure; leave it in the log
            logger.bind(record_id=str(record_id), error=str(e)).opt(exception=e).critical(
                "pipeline_failure_not_persisted"
            )

    async def _analyze(
        self, record: GenerationRecord, stats: RepoStats
    ) -> tuple[list[CommitSummary], str, bool]:
        """Summaries and overall narrative, or the template fallback when AI fails."""
        top = select_top_commits(stats.commit_details, self.top_commits)
        try:
            summaries = await self.summarizer.summarize_commits(top) if top else []
            overview = await self.summarizer.summarize_overall(
                record.repo_name, record.window_label, stats, summaries
            )
            return summaries, overview, False
        except SummarizationError as e:
            logger.bind(record_id=str(record.id), error=str(e)).warning(
                "summarization_degraded_to_template"
            )
            overview = build_fallback_overview(
                record.repo_name, record.window_label, stats, self.recent_commit_titles
            )
            return [], overview, True

    async def _generate_video(
        self, record: GenerationRecord, content: str, summaries: list[CommitSummary]
    ) -> str:
        """Derive the narrative and render it. Never fails the record."""
        log = logger.bind(record_id=str(record.id))
        narrative = await derive_narrative(
            manual=manual_highlights_of(record),
            content=content,
            summaries=summaries,
            repo_name=record.repo_name,
            summarizer=self.summarizer,
            min_content_length=self.min_content_length,
        )
        await self.records.save_narrative(record.id, narrative)

        if narrative.is_empty:
            log.info("video_skipped_no_highlights")
            return "no highlights, video skipped"
        if self.orchestrator is None:
            log.info("video_skipped_render_disabled")
            return "video rendering disabled"

        try:
            state = await self.orchestrator.start_render(
                record.id, RenderOptions(reuse_existing=self.reuse_renders), narrative=narrative
            )
            if state.status is not RenderStatus.SUCCEEDED:
                state = await self.orchestrator.wait_for_render(state.id)
        except (RenderTriggerError, RenderTimeoutError, RenderInProgressError) as e:
            log.bind(error=str(e)).warning("video_render_failed")
            return "video failed"

        if state.status is RenderStatus.SUCCEEDED:
            return "video reused" if state.reused else "video ready"
        return "video failed"
