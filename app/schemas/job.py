"""Pydantic schemas for async jobs and webhook notifications."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from app.models.job import JobStatus, JobType


class JobCreate(BaseModel):
    """Request to create a generic async job."""

    # Free-form so unknown types reach dispatch and fail explicitly
    type: str = Field(examples=[t.value for t in JobType])
    params: dict[str, Any] = Field(default_factory=dict)
    callback_url: str | None = None


class JobResponse(BaseModel):
    """Public view of an async job."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    type: str
    status: JobStatus
    progress: int
    params: dict[str, Any]
    result: Any | None = None
    error: str | None = None
    callback_url: str | None = None
    record_id: str | None = None
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None


class JobAccepted(BaseModel):
    """Response for an accepted job."""

    job_id: str = Field(serialization_alias="jobId")
    status: JobStatus


class WebhookPayload(BaseModel):
    """Fixed JSON envelope posted to a job's callback URL."""

    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(serialization_alias="jobId")
    type: str
    status: JobStatus
    result: Any | None = None
    error: str | None = None
    completed_at: str = Field(serialization_alias="completedAt")

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize with result xor error, never both."""
        data = self.model_dump(mode="json", by_alias=True)
        if self.status == JobStatus.COMPLETED:
            data.pop("error", None)
        else:
            data.pop("result", None)
        return data
