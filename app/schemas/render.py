"""Pydantic schemas for video render orchestration."""

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from app.models.render import RenderStatus
from app.schemas.record import Highlight


class RenderOptions(BaseModel):
    """Options for starting a render."""

    reuse_existing: bool = True
    force: bool = False
    # Caller-supplied highlights for this render only (not persisted)
    highlights_override: list[Highlight] | None = None


class RenderTriggerResult(BaseModel):
    """Backend response to a render trigger."""

    render_id: str
    location_ref: str | None = None


class RenderProgress(BaseModel):
    """Backend view of a render in flight."""

    status: Literal["pending", "rendering", "succeeded", "failed"]
    progress: int = Field(default=0, ge=0, le=100)
    artifact_url: str | None = None
    output_key: str | None = None
    error: str | None = None


class RenderCallback(BaseModel):
    """Push notification from the render backend."""

    render_id: str
    status: Literal["rendering", "succeeded", "failed"]
    progress: int = Field(default=100, ge=0, le=100)
    artifact_url: str | None = None
    output_key: str | None = None
    error: str | None = None


class RenderStateResponse(BaseModel):
    """Public view of a render attempt."""

    id: uuid.UUID | None
    record_id: uuid.UUID
    render_id: str | None
    status: RenderStatus
    progress: int
    error_message: str | None
    artifact_url: str | None
    reused: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
