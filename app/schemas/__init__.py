from app.schemas.github import CommitInfo, ReleaseRef, RepoRef, RepoStats, TimeWindow
from app.schemas.job import JobCreate, JobResponse, WebhookPayload
from app.schemas.llm import CommitSummaryOutput, HighlightsOutput, OverallNarrativeOutput
from app.schemas.record import (
    ChangeStats,
    CommitSummary,
    GenerationRequest,
    Highlight,
    RecordResponse,
    VideoNarrative,
)
from app.schemas.render import RenderCallback, RenderOptions, RenderProgress, RenderStateResponse

__all__ = [
    "RepoRef",
    "TimeWindow",
    "ReleaseRef",
    "CommitInfo",
    "RepoStats",
    "ChangeStats",
    "CommitSummary",
    "Highlight",
    "VideoNarrative",
    "GenerationRequest",
    "RecordResponse",
    "JobCreate",
    "JobResponse",
    "WebhookPayload",
    "CommitSummaryOutput",
    "HighlightsOutput",
    "OverallNarrativeOutput",
    "RenderOptions",
    "RenderProgress",
    "RenderCallback",
    "RenderStateResponse",
]
