from pydantic import BaseModel, Field


class CommitSummaryOutput(BaseModel):
    """
    Structured output schema for a single-commit summary.

    Used with OpenAI's response_format for guaranteed schema compliance.
    """

    summary: str = Field(
        description="One sentence (10-15 words) stating what changed and why it matters",
    )


class OverallNarrativeOutput(BaseModel):
    """Structured output schema for the overall changelog narrative."""

    markdown: str = Field(
        description="Markdown introduction for the changelog, 1-3 short paragraphs",
    )


class HighlightItem(BaseModel):
    """One extracted top change."""

    title: str = Field(description="Short title for the change, max 60 characters")
    description: str = Field(description="One sentence describing the user-facing impact")


class HighlightsOutput(BaseModel):
    """Structured output schema for top-3 highlight extraction."""

    highlights: list[HighlightItem] = Field(
        description="The three most significant changes, most important first",
    )


class CommitInput(BaseModel):
    """Input payload for commit summarization."""

    sha: str
    message: str
    additions: int
    deletions: int
    diff_preview: str = ""
