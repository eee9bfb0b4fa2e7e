"""Pydantic schemas for generation records and their derived content."""

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.record import ProcessingStage
from app.schemas.github import TimeWindow


class ChangeStats(BaseModel):
    """Line-change totals for a record."""

    model_config = ConfigDict(frozen=True)

    added: int = Field(default=0, ge=0)
    modified: int = Field(default=0, ge=0)
    removed: int = Field(default=0, ge=0)


class CommitSummary(BaseModel):
    """Natural-language summary of one commit."""

    model_config = ConfigDict(frozen=True)

    sha: str
    message: str
    additions: int = Field(default=0, ge=0)
    deletions: int = Field(default=0, ge=0)
    ai_summary: str

    @property
    def title(self) -> str:
        return self.message.split("\n", 1)[0].strip() or "Change"

    @property
    def churn(self) -> int:
        return self.additions + self.deletions


class Highlight(BaseModel):
    """One top change shown prominently in the video."""

    model_config = ConfigDict(frozen=True)

    title: str = Field(min_length=1)
    description: str = ""


class VideoNarrative(BaseModel):
    """Top highlights plus a full scrolling list used to drive a render."""

    model_config = ConfigDict(frozen=True)

    top_highlights: list[Highlight] = Field(default_factory=list, max_length=3)
    scrolling_changes: list[str] = Field(default_factory=list)
    source: Literal["manual", "content", "summaries", "none"] = "none"

    @property
    def is_empty(self) -> bool:
        return not self.top_highlights


# -----------------------------------------------------------------------------
# API Schemas
# -----------------------------------------------------------------------------


class GenerationRequest(BaseModel):
    """Request to generate a changelog for a repository window."""

    repository: str = Field(description="owner/repo or a github.com URL")
    branch: str | None = None
    window: TimeWindow = Field(default_factory=TimeWindow)

    @field_validator("repository")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("repository is required")
        return value


class GenerationAccepted(BaseModel):
    """Response for an accepted generation request."""

    id: uuid.UUID
    stage: ProcessingStage


class HighlightsUpdate(BaseModel):
    """Manual highlight override supplied by an editor."""

    highlights: list[Highlight] = Field(max_length=3)


class RegenerateVideoRequest(BaseModel):
    """Options for regenerating a record's video."""

    force: bool = False
    callback_url: str | None = None


class RecordResponse(BaseModel):
    """Public view of a generation record."""

    id: uuid.UUID
    repo_name: str
    repo_url: str
    branch: str | None
    window_label: str
    stage: ProcessingStage
    stage_message: str
    error_message: str | None
    content: str | None
    change_stats: ChangeStats | None
    contributors: list[str]
    commit_summaries: list[CommitSummary]
    video_narrative: VideoNarrative | None
    manual_highlights: list[Highlight] | None
    artifact_url: str | None
    created_at: datetime
    updated_at: datetime
