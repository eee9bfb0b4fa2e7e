"""Collaborator protocols consumed by the pipeline and render orchestrator.

Concrete implementations live in app.github, app.summarizer and app.render;
tests substitute in-memory fakes.
"""

from typing import Any, Protocol

from app.schemas.github import CommitInfo, RepoRef, RepoStats, TimeWindow
from app.schemas.record import CommitSummary, Highlight, VideoNarrative
from app.schemas.render import RenderProgress, RenderTriggerResult


class StatsFetcher(Protocol):
    async def fetch(
        self, repo: RepoRef, window: TimeWindow, branch: str | None = None
    ) -> RepoStats:
        """Fetch commit/churn/contributor aggregates. Raises UpstreamFetchError."""
        ...


class Summarizer(Protocol):
    async def summarize_commits(self, commits: list[CommitInfo]) -> list[CommitSummary]:
        """Summarize each commit. Raises SummarizationError."""
        ...

    async def summarize_overall(
        self,
        repo_name: str,
        window_label: str,
        stats: RepoStats,
        summaries: list[CommitSummary],
    ) -> str:
        """Write the overall narrative. Raises SummarizationError."""
        ...

    async def extract_highlights_from_content(
        self, content: str, repo_name: str
    ) -> list[Highlight]:
        """Pick the top 3 changes from final content. Raises SummarizationError."""
        ...

    async def extract_highlights_from_summaries(
        self, summaries: list[CommitSummary], repo_name: str
    ) -> list[Highlight]:
        """Pick the top 3 changes from commit summaries. Raises SummarizationError."""
        ...


class RenderBackend(Protocol):
    async def trigger(
        self, narrative: VideoNarrative, metadata: dict[str, Any]
    ) -> RenderTriggerResult:
        """Start a remote render. Raises RenderTriggerError."""
        ...

    async def status(self, render_id: str, location_ref: str | None = None) -> RenderProgress:
        """Poll a remote render."""
        ...


class ArtifactStore(Protocol):
    def is_configured(self) -> bool: ...

    def public_url(self, key: str, location_ref: str | None = None) -> str: ...

    async def exists(self, url: str) -> bool: ...
