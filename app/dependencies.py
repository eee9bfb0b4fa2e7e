from collections.abc import Awaitable, Callable
from functools import partial
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import AppConfig, get_config
from app.core.tasks import BackgroundTaskRunner
from app.github.client import GitHubStatsFetcher
from app.jobs.dispatch import JobDispatcher
from app.jobs.store import JobStore, SqlJobStore
from app.jobs.tracker import JobTracker, WebhookSender
from app.jobs.webhook import deliver_webhook
from app.pipeline.controller import PipelineController
from app.pipeline.interfaces import ArtifactStore, RenderBackend, StatsFetcher, Summarizer
from app.render.backend import HttpRenderBackend
from app.render.orchestrator import RenderOrchestrator
from app.render.storage import S3ArtifactStore
from app.services.records import RecordStore
from app.summarizer.ai_summarizer import OpenAISummarizer


class Services:
    """
    Wires the pipeline, render and job components together.

    Collaborators default to the production implementations built from
    configuration; tests pass fakes instead.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: AppConfig | None = None,
        fetcher: StatsFetcher | None = None,
        summarizer: Summarizer | None = None,
        render_backend: RenderBackend | None = None,
        artifacts: ArtifactStore | None = None,
        job_store: JobStore | None = None,
        webhook_sender: WebhookSender | None = None,
        runner: BackgroundTaskRunner | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ):
        config = config or get_config()
        self.config = config
        self.session_factory = session_factory
        self.runner = runner or BackgroundTaskRunner()
        self.records = RecordStore(session_factory)
        if webhook_sender is None:
            webhook_sender = partial(deliver_webhook, timeout=config.jobs.webhook_timeout_seconds)
        self.tracker = JobTracker(job_store or SqlJobStore(session_factory), webhook_sender)

        if fetcher is None:
            fetcher = GitHubStatsFetcher()
        if summarizer is None:
            summarizer = OpenAISummarizer()

        self.orchestrator: RenderOrchestrator | None = None
        if render_backend is None and config.render.enabled:
            render_backend = HttpRenderBackend()
        if render_backend is not None:
            if artifacts is None:
                artifacts = S3ArtifactStore()
            extra = {"sleep": sleep} if sleep is not None else {}
            self.orchestrator = RenderOrchestrator(
                session_factory,
                self.records,
                render_backend,
                summarizer,
                artifacts,
                max_poll_attempts=config.render.max_poll_attempts,
                poll_interval_seconds=config.render.poll_interval_seconds,
                min_content_length=config.pipeline.min_content_length,
                release_tag=config.render.release_tag,
                lang_code=config.render.lang_code,
                **extra,
            )

        self.controller = PipelineController(
            self.records,
            fetcher,
            summarizer,
            self.orchestrator,
            self.runner,
            tracker=self.tracker,
            top_commits=config.pipeline.top_commits,
            recent_commit_titles=config.pipeline.recent_commit_titles,
            min_content_length=config.pipeline.min_content_length,
            reuse_renders=config.render.reuse_existing,
        )
        self.dispatcher = JobDispatcher(
            self.tracker, self.runner, self.controller, self.records, self.orchestrator
        )


_services: Services | None = None


def get_services() -> Services:
    """Process-wide service container, built on first use."""
    global _services
    if _services is None:
        from app.core.database import AsyncSessionLocal

        _services = Services(AsyncSessionLocal)
    return _services


def reset_services() -> None:
    global _services
    _services = None


async def shutdown_services() -> None:
    """Stop background work if the container was ever built."""
    if _services is not None:
        await _services.runner.shutdown()
    reset_services()


# Type alias for dependency injection
AppServices = Annotated[Services, Depends(get_services)]
