"""Async job tracking model."""

import enum
import uuid
from datetime import datetime

from sqlalchemy import JSON, Enum, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin


class JobType(str, enum.Enum):
    """Closed set of trackable long-running operations."""

    PROCESS_RECORD = "process-record"
    RENDER_VIDEO = "render-video"
    EXTRACT_HIGHLIGHTS = "extract-highlights"


class JobStatus(str, enum.Enum):
    """Job lifecycle: queued -> processing -> completed | failed | cancelled."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


def generate_job_id() -> str:
    return f"job_{uuid.uuid4().hex[:16]}"


class AsyncJob(Base, TimestampMixin):
    """A generic trackable async operation."""

    __tablename__ = "async_jobs"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=generate_job_id)
    # Stored as plain string so unknown types surface as explicit dispatch failures
    type: Mapped[str] = mapped_column(String(64), index=True)
    status: Mapped[JobStatus] = mapped_column(
        Enum(
            JobStatus,
            values_callable=lambda e: [x.value for x in e],
            name="jobstatus",
            native_enum=False,
            length=16,
        ),
        default=JobStatus.QUEUED,
        index=True,
    )
    progress: Mapped[int] = mapped_column(Integer, default=0)
    params: Mapped[dict] = mapped_column(JSON, default=dict)
    result: Mapped[dict | list | None] = mapped_column(JSON)
    error: Mapped[str | None] = mapped_column(Text)
    callback_url: Mapped[str | None] = mapped_column(String(1024))
    record_id: Mapped[str | None] = mapped_column(String(64), index=True)
    completed_at: Mapped[datetime | None] = mapped_column()

    def __repr__(self) -> str:
        return f"<AsyncJob {self.id} type={self.type} status={self.status.value}>"
