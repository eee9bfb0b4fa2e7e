"""OpenAI-backed summarizer for commits, changelog narrative and video highlights."""

from typing import TypeVar

import backoff
from openai import APIConnectionError, AsyncOpenAI, InternalServerError, RateLimitError

from app.config import get_settings
from app.core.errors import SummarizationError
from app.core.logging import get_logger
from app.schemas.github import CommitInfo, RepoStats
from app.schemas.llm import (
    CommitInput,
    CommitSummaryOutput,
    HighlightsOutput,
    OverallNarrativeOutput,
)
from app.schemas.record import CommitSummary, Highlight

T = TypeVar("T")

logger = get_logger(__name__)

COMMIT_SYSTEM_PROMPT = """You summarize individual git commits for a changelog.

Rules:
- Write a single sentence (10-15 words) stating what changed and why it matters
- Use direct, jargon-light language
- Avoid filler like "This commit" or "This update"
- Base the summary on the commit message and diff preview only"""

OVERALL_SYSTEM_PROMPT = """You write the introduction of a repository changelog.

Rules:
- Write 1-3 short Markdown paragraphs for a balanced (technical and non-technical) audience
- Mention the most impactful changes first
- Do not add a "Key Changes" section, it is appended separately
- Keep the tone clear and confident, avoid marketing fluff
- Only describe changes present in the provided summaries"""

HIGHLIGHTS_SYSTEM_PROMPT = """You pick the top changes to feature in a short changelog video.

Rules:
- Return exactly the three most significant user-facing changes, most important first
- Titles are short (max 60 characters) and readable on screen
- Descriptions are a single sentence on the impact for users
- Skip chores such as dependency bumps, formatting or CI tweaks unless nothing else changed
- Fewer than three is allowed only when fewer distinct changes exist"""

RETRYABLE_ERRORS = (RateLimitError, InternalServerError, APIConnectionError)


def _commit_input(commit: CommitInfo, diff_chars: int = 2000) -> CommitInput:
    return CommitInput(
        sha=commit.sha,
        message=commit.message,
        additions=commit.additions,
        deletions=commit.deletions,
        diff_preview=commit.diff[:diff_chars],
    )


def _to_highlights(output: HighlightsOutput | None) -> list[Highlight]:
    if output is None:
        return []
    return [
        Highlight(title=item.title.strip(), description=item.description.strip())
        for item in output.highlights
        if item.title.strip()
    ][:3]


class OpenAISummarizer:
    """
    Summarizer implementation using OpenAI structured outputs.

    Every method raises SummarizationError when no API key is configured or the
    provider fails after retries, so callers can apply their fallback policy.
    """

    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        model: str | None = None,
        temperature: float = 0.3,
    ):
        settings = get_settings()
        if client is None and settings.openai_api_key:
            client = AsyncOpenAI(api_key=settings.openai_api_key)
        self.client = client
        self.model = model or settings.llm_model
        self.temperature = temperature

    def _require_client(self) -> AsyncOpenAI:
        if self.client is None:
            logger.warning("openai_api_key_not_set")
            raise SummarizationError("OpenAI API key not configured")
        return self.client

    @backoff.on_exception(
        backoff.expo,
        RETRYABLE_ERRORS,
        max_tries=3,
        max_time=60,
    )
    async def _parse(self, system_prompt: str, user_prompt: str, response_format: type[T]) -> T | None:
        client = self._require_client()
        response = await client.beta.chat.completions.parse(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            response_format=response_format,
            temperature=self.temperature,
        )
        usage = response.usage
        if usage:
            logger.bind(
                model=self.model,
                schema=response_format.__name__,
                tokens=usage.total_tokens,
            ).debug("llm_call_complete")
        return response.choices[0].message.parsed

    async def _call(
        self, operation: str, system_prompt: str, user_prompt: str, response_format: type[T]
    ) -> T:
        self._require_client()
        try:
            result = await self._parse(system_prompt, user_prompt, response_format)
        except SummarizationError:
            raise
        except Exception as e:
            logger.bind(operation=operation, error=str(e)).error("llm_call_failed")
            raise SummarizationError(f"{operation} failed: {e}") from e
        if result is None:
            logger.bind(operation=operation).warning("llm_call_no_result")
            raise SummarizationError(f"{operation} returned no result")
        return result

    async def summarize_commits(self, commits: list[CommitInfo]) -> list[CommitSummary]:
        """
        Summarize each commit with one sentence.

        The caller selects which commits to summarize (top-K by churn); order is
        preserved. A failure on any commit raises SummarizationError.
        """
        summaries = []
        for commit in commits:
            data = _commit_input(commit)
            user_prompt = f"""Commit message:
{data.message}

Lines added: {data.additions}
Lines deleted: {data.deletions}

Diff preview:
{data.diff_preview or "(not available)"}

Respond with a single sentence."""
            output = await self._call(
                "summarize_commit", COMMIT_SYSTEM_PROMPT, user_prompt, CommitSummaryOutput
            )
            summary = output.summary.strip() or commit.title
            summaries.append(
                CommitSummary(
                    sha=commit.sha,
                    message=commit.message,
                    additions=commit.additions,
                    deletions=commit.deletions,
                    ai_summary=summary,
                )
            )

        logger.bind(count=len(summaries)).info("commits_summarized")
        return summaries

    async def summarize_overall(
        self,
        repo_name: str,
        window_label: str,
        stats: RepoStats,
        summaries: list[CommitSummary],
    ) -> str:
        """Write the introductory narrative for the changelog."""
        summaries_text = "\n\n".join(
            f"{i}. Commit: {s.title}\n   Summary: {s.ai_summary}"
            for i, s in enumerate(summaries, 1)
        )
        user_prompt = f"""Repository: {repo_name}
Time period: {window_label}
Total commits: {stats.commits}
Total additions: {stats.additions}
Total deletions: {stats.deletions}
Contributors: {", ".join(stats.contributors) or "none"}

Commit summaries:
{summaries_text or "(none)"}"""

        output = await self._call(
            "summarize_overall", OVERALL_SYSTEM_PROMPT, user_prompt, OverallNarrativeOutput
        )
        markdown = output.markdown.strip()
        if not markdown:
            raise SummarizationError("summarize_overall returned empty text")
        return markdown

    async def extract_highlights_from_content(
        self, content: str, repo_name: str
    ) -> list[Highlight]:
        """Pick the top three changes from finished changelog content."""
        user_prompt = f"""Repository: {repo_name}

Changelog:
{content}"""
        output = await self._call(
            "extract_highlights_content", HIGHLIGHTS_SYSTEM_PROMPT, user_prompt, HighlightsOutput
        )
        return _to_highlights(output)

    async def extract_highlights_from_summaries(
        self, summaries: list[CommitSummary], repo_name: str
    ) -> list[Highlight]:
        """Pick the top three changes from per-commit summaries."""
        lines = "\n".join(
            f"- {s.title} (+{s.additions} -{s.deletions}): {s.ai_summary}" for s in summaries
        )
        user_prompt = f"""Repository: {repo_name}

Commit summaries:
{lines}"""
        output = await self._call(
            "extract_highlights_summaries", HIGHLIGHTS_SYSTEM_PROMPT, user_prompt, HighlightsOutput
        )
        return _to_highlights(output)
