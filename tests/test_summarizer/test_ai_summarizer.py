"""Tests for the OpenAI summarizer."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from openai import APIConnectionError

from app.core.errors import SummarizationError
from app.schemas.github import CommitInfo, RepoStats
from app.schemas.llm import (
    CommitSummaryOutput,
    HighlightItem,
    HighlightsOutput,
    OverallNarrativeOutput,
)
from app.schemas.record import CommitSummary
from app.summarizer.ai_summarizer import OpenAISummarizer

pytestmark = pytest.mark.asyncio


def _response(parsed) -> MagicMock:
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.parsed = parsed
    response.usage.total_tokens = 42
    return response


def _summarizer(*parsed) -> tuple[OpenAISummarizer, AsyncMock]:
    client = MagicMock()
    parse = AsyncMock(side_effect=[p if isinstance(p, Exception) else _response(p) for p in parsed])
    client.beta.chat.completions.parse = parse
    return OpenAISummarizer(client=client, model="gpt-test"), parse


def _connection_error() -> APIConnectionError:
    return APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"))


class TestSummarizeCommits:
    """Tests for summarize_commits."""

    async def test_one_summary_per_commit_in_order(self):
        """Should summarize each commit and keep churn figures."""
        summarizer, parse = _summarizer(
            CommitSummaryOutput(summary="Adds OAuth sign-in for users."),
            CommitSummaryOutput(summary="Fixes a README typo."),
        )
        commits = [
            CommitInfo(sha="a1", message="Add OAuth", additions=300, deletions=20, diff="+login"),
            CommitInfo(sha="b2", message="Fix typo", additions=1, deletions=1),
        ]

        summaries = await summarizer.summarize_commits(commits)

        assert [s.sha for s in summaries] == ["a1", "b2"]
        assert summaries[0].ai_summary == "Adds OAuth sign-in for users."
        assert summaries[0].additions == 300
        assert parse.await_count == 2
        kwargs = parse.await_args_list[0].kwargs
        assert kwargs["model"] == "gpt-test"
        assert kwargs["response_format"] is CommitSummaryOutput
        assert "+login" in kwargs["messages"][1]["content"]

    async def test_blank_summary_falls_back_to_title(self):
        """Should use the commit title when the model returns nothing."""
        summarizer, _ = _summarizer(CommitSummaryOutput(summary="   "))
        summaries = await summarizer.summarize_commits(
            [CommitInfo(sha="a", message="Add login\n\nbody")]
        )
        assert summaries[0].ai_summary == "Add login"

    async def test_provider_error_raises_summarization_error(self):
        """Should wrap provider failures."""
        summarizer, _ = _summarizer(ValueError("schema mismatch"))
        with pytest.raises(SummarizationError, match="schema mismatch"):
            await summarizer.summarize_commits([CommitInfo(sha="a", message="A")])

    async def test_transient_errors_retried(self):
        """Should retry connection errors before succeeding."""
        summarizer, parse = _summarizer(
            _connection_error(), CommitSummaryOutput(summary="Works now.")
        )
        with patch("asyncio.sleep", new=AsyncMock()):
            summaries = await summarizer.summarize_commits([CommitInfo(sha="a", message="A")])

        assert summaries[0].ai_summary == "Works now."
        assert parse.await_count == 2

    async def test_no_api_key(self):
        """Should raise SummarizationError without a client."""
        summarizer = OpenAISummarizer(client=None)
        summarizer.client = None
        with pytest.raises(SummarizationError, match="not configured"):
            await summarizer.summarize_commits([CommitInfo(sha="a", message="A")])


class TestSummarizeOverall:
    """Tests for summarize_overall."""

    async def test_returns_markdown(self):
        """Should return the narrative and include stats in the prompt."""
        summarizer, parse = _summarizer(OverallNarrativeOutput(markdown="  A great week.  "))
        stats = RepoStats(commits=3, additions=120, deletions=30, contributors=["@a", "@b"])

        text = await summarizer.summarize_overall("acme/widgets", "Last 7 days", stats, [])

        assert text == "A great week."
        prompt = parse.await_args.kwargs["messages"][1]["content"]
        assert "Total additions: 120" in prompt
        assert "@a, @b" in prompt

    async def test_empty_markdown_raises(self):
        """Should treat empty narratives as failures."""
        summarizer, _ = _summarizer(OverallNarrativeOutput(markdown=""))
        with pytest.raises(SummarizationError):
            await summarizer.summarize_overall(
                "acme/widgets", "Last 7 days", RepoStats(commits=0, additions=0, deletions=0), []
            )

    async def test_refusal_raises(self):
        """Should raise when the model returns no parsed output."""
        summarizer, _ = _summarizer(None)
        with pytest.raises(SummarizationError, match="no result"):
            await summarizer.summarize_overall(
                "acme/widgets", "Last 7 days", RepoStats(commits=0, additions=0, deletions=0), []
            )


class TestExtractHighlights:
    """Tests for the highlight extraction methods."""

    async def test_from_content_capped_at_three(self):
        """Should return at most three non-empty highlights."""
        summarizer, _ = _summarizer(
            HighlightsOutput(
                highlights=[
                    HighlightItem(title="One", description="d"),
                    HighlightItem(title=" ", description="blank"),
                    HighlightItem(title="Two", description="d"),
                    HighlightItem(title="Three", description="d"),
                    HighlightItem(title="Four", description="d"),
                ]
            )
        )
        highlights = await summarizer.extract_highlights_from_content("# Notes", "acme/widgets")
        assert [h.title for h in highlights] == ["One", "Two", "Three"]

    async def test_from_summaries_prompt(self):
        """Should list each summary with its churn in the prompt."""
        summarizer, parse = _summarizer(
            HighlightsOutput(highlights=[HighlightItem(title="Login", description="OAuth")])
        )
        summaries = [
            CommitSummary(sha="a", message="Add login", additions=5, deletions=2, ai_summary="OAuth")
        ]

        highlights = await summarizer.extract_highlights_from_summaries(summaries, "acme/widgets")

        assert highlights[0].title == "Login"
        assert "- Add login (+5 -2): OAuth" in parse.await_args.kwargs["messages"][1]["content"]
