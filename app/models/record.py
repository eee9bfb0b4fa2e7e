"""Generation record model: one changelog request for a repository window."""

import enum
import uuid

from sqlalchemy import JSON, Enum, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin


class ProcessingStage(str, enum.Enum):
    """Pipeline stages, in execution order."""

    PENDING = "pending"
    FETCHING_STATS = "fetching_stats"
    ANALYZING_COMMITS = "analyzing_commits"
    GENERATING_CONTENT = "generating_content"
    GENERATING_VIDEO = "generating_video"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessingStage.COMPLETED, ProcessingStage.FAILED)


STAGE_ORDER: tuple[ProcessingStage, ...] = (
    ProcessingStage.PENDING,
    ProcessingStage.FETCHING_STATS,
    ProcessingStage.ANALYZING_COMMITS,
    ProcessingStage.GENERATING_CONTENT,
    ProcessingStage.GENERATING_VIDEO,
    ProcessingStage.COMPLETED,
)


def is_forward_transition(current: ProcessingStage, target: ProcessingStage) -> bool:
    """Stages only move forward through STAGE_ORDER, or jump to FAILED."""
    if current.is_terminal:
        return False
    if target is ProcessingStage.FAILED:
        return True
    return STAGE_ORDER.index(target) > STAGE_ORDER.index(current)


class GenerationRecord(Base, TimestampMixin):
    """A repository/time-window changelog request and its generated output."""

    __tablename__ = "generation_records"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    repo_name: Mapped[str] = mapped_column(String(256), index=True)
    repo_url: Mapped[str] = mapped_column(String(512))
    branch: Mapped[str | None] = mapped_column(String(256))
    time_window: Mapped[dict] = mapped_column(JSON)
    window_label: Mapped[str] = mapped_column(String(256))

    # Pipeline state
    stage: Mapped[ProcessingStage] = mapped_column(
        Enum(
            ProcessingStage,
            values_callable=lambda e: [x.value for x in e],
            name="processingstage",
            native_enum=False,
            length=32,
        ),
        default=ProcessingStage.PENDING,
    )
    stage_message: Mapped[str] = mapped_column(String(512), default="Queued")
    error_message: Mapped[str | None] = mapped_column(Text)

    # Generated content
    content: Mapped[str | None] = mapped_column(Text)
    change_stats: Mapped[dict | None] = mapped_column(JSON)
    contributors: Mapped[list | None] = mapped_column(JSON)
    commit_summaries: Mapped[list | None] = mapped_column(JSON)

    # Video
    video_narrative: Mapped[dict | None] = mapped_column(JSON)
    manual_highlights: Mapped[list | None] = mapped_column(JSON)
    artifact_url: Mapped[str | None] = mapped_column(String(1024))

    def __repr__(self) -> str:
        return f"<GenerationRecord {self.repo_name} stage={self.stage.value}>"
