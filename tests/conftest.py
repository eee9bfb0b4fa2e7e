"""
Pytest configuration and fixtures for Repatch tests.

Provides:
- Async test database with SQLite
- In-memory fakes for GitHub, the summarizer, the render backend and storage
- A wired service container and an API test client
- Factory fixtures for creating test data
"""

import asyncio
import uuid
from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database import create_engine, create_session_factory
from app.core.datetime_utils import utc_now
from app.core.errors import SummarizationError
from app.dependencies import Services, get_services
from app.jobs.store import InMemoryJobStore
from app.main import app
from app.models import Base
from app.models.record import GenerationRecord, ProcessingStage
from app.schemas.github import CommitInfo, RepoRef, RepoStats, TimeWindow
from app.schemas.job import WebhookPayload
from app.schemas.record import CommitSummary, Highlight, VideoNarrative
from app.schemas.render import RenderProgress, RenderTriggerResult


# ============================================================================
# Fakes for external collaborators
# ============================================================================


def make_commit(sha: str, message: str, additions: int = 0, deletions: int = 0) -> CommitInfo:
    return CommitInfo(sha=sha, message=message, additions=additions, deletions=deletions)


class FakeStatsFetcher:
    """StatsFetcher returning canned stats or raising a canned error."""

    def __init__(self, stats: RepoStats | None = None, error: Exception | None = None):
        self.stats = stats or RepoStats(commits=0, additions=0, deletions=0)
        self.error = error
        self.calls: list[tuple[RepoRef, TimeWindow, str | None]] = []

    async def fetch(self, repo: RepoRef, window: TimeWindow, branch: str | None = None) -> RepoStats:
        self.calls.append((repo, window, branch))
        if self.error:
            raise self.error
        return self.stats


class FakeSummarizer:
    """Summarizer with switchable failures and call recording."""

    def __init__(self) -> None:
        self.fail_commits = False
        self.fail_overall = False
        self.content_highlights: list[Highlight] | Exception = []
        self.summary_highlights: list[Highlight] | Exception = []
        self.summarized: list[list[CommitInfo]] = []
        self.content_calls = 0
        self.summary_calls = 0

    async def summarize_commits(self, commits: list[CommitInfo]) -> list[CommitSummary]:
        self.summarized.append(list(commits))
        if self.fail_commits:
            raise SummarizationError("provider unavailable")
        return [
            CommitSummary(
                sha=c.sha,
                message=c.message,
                additions=c.additions,
                deletions=c.deletions,
                ai_summary=f"Summary of {c.title}",
            )
            for c in commits
        ]

    async def summarize_overall(
        self, repo_name: str, window_label: str, stats: RepoStats, summaries: list[CommitSummary]
    ) -> str:
        if self.fail_overall:
            raise SummarizationError("provider unavailable")
        return f"# {repo_name}\n\nA productive period with {stats.commits} commits."

    async def extract_highlights_from_content(self, content: str, repo_name: str) -> list[Highlight]:
        self.content_calls += 1
        if isinstance(self.content_highlights, Exception):
            raise self.content_highlights
        return list(self.content_highlights)

    async def extract_highlights_from_summaries(
        self, summaries: list[CommitSummary], repo_name: str
    ) -> list[Highlight]:
        self.summary_calls += 1
        if isinstance(self.summary_highlights, Exception):
            raise self.summary_highlights
        return list(self.summary_highlights)


class FakeRenderBackend:
    """Render backend that replays scripted progress observations."""

    def __init__(self) -> None:
        self.triggered: list[tuple[VideoNarrative, dict[str, Any]]] = []
        self.trigger_error: Exception | None = None
        self.progress: list[RenderProgress | Exception] = [
            RenderProgress(status="succeeded", progress=100, output_key="renders/out.mp4")
        ]
        self.status_calls = 0
        # Holds trigger until set, keeping the render in flight
        self.gate: asyncio.Event | None = None

    async def trigger(self, narrative: VideoNarrative, metadata: dict[str, Any]) -> RenderTriggerResult:
        if self.gate is not None:
            await self.gate.wait()
        if self.trigger_error:
            raise self.trigger_error
        self.triggered.append((narrative, metadata))
        return RenderTriggerResult(
            render_id=f"render-{len(self.triggered)}", location_ref="render-bucket"
        )

    async def status(self, render_id: str, location_ref: str | None = None) -> RenderProgress:
        index = min(self.status_calls, len(self.progress) - 1)
        self.status_calls += 1
        observed = self.progress[index]
        if isinstance(observed, Exception):
            raise observed
        return observed


class FakeArtifactStore:
    """Artifact store with a configurable set of existing URLs."""

    def __init__(self, configured: bool = False) -> None:
        self.configured = configured
        self.existing: set[str] = set()

    def is_configured(self) -> bool:
        return self.configured

    def public_url(self, key: str, location_ref: str | None = None) -> str:
        return f"https://{location_ref or 'artifacts'}.example.com/{key}"

    async def exists(self, url: str) -> bool:
        return url in self.existing


class WebhookRecorder:
    """Captures webhook deliveries instead of sending them."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, WebhookPayload]] = []
        self.fail = False

    async def __call__(self, url: str, payload: WebhookPayload) -> bool:
        self.sent.append((url, payload))
        if self.fail:
            raise ConnectionError("receiver down")
        return True


async def no_sleep(_seconds: float) -> None:
    return None


# ============================================================================
# Database
# ============================================================================


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """
    Create async test database engine.

    File-backed so background tasks and request handlers get their own
    connections, as they do against Postgres.
    """
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test database."""
    return create_session_factory(db_engine)


# ============================================================================
# Fakes and services
# ============================================================================


@pytest.fixture
def sample_stats() -> RepoStats:
    commits = [
        make_commit("a1", "Add OAuth login flow\n\nLong description", 300, 20),
        make_commit("b2", "Fix typo in README", 1, 1),
        make_commit("c3", "Refactor render queue for parallel jobs", 150, 90),
    ]
    return RepoStats(
        commits=3,
        additions=451,
        deletions=111,
        contributors=["@alice", "@bob"],
        commit_messages=[c.message for c in commits],
        commit_details=commits,
    )


@pytest.fixture
def fetcher(sample_stats: RepoStats) -> FakeStatsFetcher:
    return FakeStatsFetcher(sample_stats)


@pytest.fixture
def summarizer() -> FakeSummarizer:
    return FakeSummarizer()


@pytest.fixture
def render_backend() -> FakeRenderBackend:
    return FakeRenderBackend()


@pytest.fixture
def artifacts() -> FakeArtifactStore:
    return FakeArtifactStore()


@pytest.fixture
def webhooks() -> WebhookRecorder:
    return WebhookRecorder()


@pytest_asyncio.fixture
async def services(
    session_factory,
    fetcher,
    summarizer,
    render_backend,
    artifacts,
    webhooks,
) -> AsyncGenerator[Services, None]:
    """Service container wired to the test database and fakes."""
    container = Services(
        session_factory,
        fetcher=fetcher,
        summarizer=summarizer,
        render_backend=render_backend,
        artifacts=artifacts,
        job_store=InMemoryJobStore(),
        webhook_sender=webhooks,
        sleep=no_sleep,
    )
    yield container
    await container.runner.shutdown(timeout=1.0)


@pytest_asyncio.fixture
async def client(services: Services) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client with the service container override."""
    app.dependency_overrides[get_services] = lambda: services

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ============================================================================
# Factory Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def record_factory(session_factory):
    """Factory for creating generation records in any stage."""

    async def _create_record(
        repo_name: str = "acme/widgets",
        stage: ProcessingStage = ProcessingStage.PENDING,
        content: str | None = None,
        summaries: list[CommitSummary] | None = None,
        manual_highlights: list[Highlight] | None = None,
        artifact_url: str | None = None,
    ) -> GenerationRecord:
        window = TimeWindow.from_preset("1week")
        record = GenerationRecord(
            id=uuid.uuid4(),
            repo_name=repo_name,
            repo_url=f"https://github.com/{repo_name}",
            time_window=window.model_dump(mode="json"),
            window_label=window.describe(),
            stage=stage,
            stage_message=stage.value,
            content=content,
            commit_summaries=[s.model_dump(mode="json") for s in summaries or []],
            contributors=[],
            manual_highlights=(
                [h.model_dump(mode="json") for h in manual_highlights]
                if manual_highlights
                else None
            ),
            artifact_url=artifact_url,
            created_at=utc_now(),
            updated_at=utc_now(),
        )
        async with session_factory() as session:
            session.add(record)
            await session.commit()
        return record

    return _create_record


@pytest.fixture
def make_summary():
    """Factory for CommitSummary values."""

    def _make(
        title: str = "Add feature",
        additions: int = 10,
        deletions: int = 2,
        ai_summary: str | None = None,
    ) -> CommitSummary:
        return CommitSummary(
            sha=uuid.uuid4().hex[:7],
            message=f"{title}\n\nBody",
            additions=additions,
            deletions=deletions,
            ai_summary=ai_summary or f"{title} for users",
        )

    return _make
