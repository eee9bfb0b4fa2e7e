"""Video narrative derivation: which changes a render features.

Sources are tried in strict priority order and the first non-empty one wins:
manual override, AI extraction from the final content, AI extraction from the
per-commit summaries, then an empty narrative (the render is skipped).
"""

from app.core.errors import SummarizationError
from app.core.logging import get_logger
from app.pipeline.interfaces import Summarizer
from app.schemas.record import CommitSummary, Highlight, VideoNarrative

logger = get_logger(__name__)

MAX_TOP_HIGHLIGHTS = 3
TOP_TITLE_LIMIT = 60
SCROLLING_TITLE_LIMIT = 50


def truncate_title(title: str, limit: int) -> str:
    title = title.strip()
    if len(title) > limit:
        return title[:limit] + "..."
    return title


def build_scrolling_changes(summaries: list[CommitSummary]) -> list[str]:
    """One "<title>: <summary>" line per commit summary, in order."""
    return [
        f"{truncate_title(s.title, SCROLLING_TITLE_LIMIT)}: {s.ai_summary or s.title}"
        for s in summaries
    ]


def _finalize(highlights: list[Highlight]) -> list[Highlight]:
    return [
        Highlight(title=truncate_title(h.title, TOP_TITLE_LIMIT), description=h.description)
        for h in highlights[:MAX_TOP_HIGHLIGHTS]
    ]


def highlights_from_summaries(summaries: list[CommitSummary]) -> list[Highlight]:
    """Deterministic top three by churn, used when AI extraction is unavailable."""
    ranked = sorted(summaries, key=lambda s: s.churn, reverse=True)
    return _finalize([Highlight(title=s.title, description=s.ai_summary) for s in ranked])


async def derive_narrative(
    *,
    manual: list[Highlight] | None,
    content: str | None,
    summaries: list[CommitSummary],
    repo_name: str,
    summarizer: Summarizer,
    min_content_length: int = 100,
) -> VideoNarrative:
    """
    Resolve the video narrative for a record.

    Args:
        manual: Caller-supplied highlights, used verbatim when non-empty
        content: Final assembled changelog text
        summaries: Per-commit summaries, also the source of the scrolling list
        repo_name: "owner/repo", passed to the extraction prompts
        summarizer: Provider used for AI extraction
        min_content_length: Content must be strictly longer than this to be mined

    Returns:
        VideoNarrative; ``is_empty`` is True when no source produced highlights
    """
    log = logger.bind(repo=repo_name)
    scrolling = build_scrolling_changes(summaries)

    if manual:
        log.bind(count=len(manual)).info("narrative_from_manual")
        return VideoNarrative(
            top_highlights=list(manual[:MAX_TOP_HIGHLIGHTS]),
            scrolling_changes=scrolling,
            source="manual",
        )

    if content and len(content) > min_content_length:
        try:
            extracted = await summarizer.extract_highlights_from_content(content, repo_name)
        except SummarizationError as e:
            log.bind(error=str(e)).warning("narrative_content_extraction_failed")
            extracted = []
        if extracted:
            log.bind(count=len(extracted)).info("narrative_from_content")
            return VideoNarrative(
                top_highlights=_finalize(extracted),
                scrolling_changes=scrolling,
                source="content",
            )

    if summaries:
        try:
            extracted = await summarizer.extract_highlights_from_summaries(summaries, repo_name)
            top = _finalize(extracted)
        except SummarizationError as e:
            log.bind(error=str(e)).warning("narrative_summary_extraction_failed")
            top = highlights_from_summaries(summaries)
        if not top:
            top = highlights_from_summaries(summaries)
        log.bind(count=len(top)).info("narrative_from_summaries")
        return VideoNarrative(top_highlights=top, scrolling_changes=scrolling, source="summaries")

    log.info("narrative_empty")
    return VideoNarrative(scrolling_changes=scrolling, source="none")
