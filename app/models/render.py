"""Render attempt tracking model."""

import enum
import uuid

from sqlalchemy import Enum, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin


class RenderStatus(str, enum.Enum):
    """Render attempt status."""

    PENDING = "pending"
    RENDERING = "rendering"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RenderStatus.SUCCEEDED, RenderStatus.FAILED)


class RenderState(Base, TimestampMixin):
    """One render attempt for a generation record."""

    __tablename__ = "render_states"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    record_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("generation_records.id", ondelete="CASCADE"), index=True
    )

    # Backend references
    render_id: Mapped[str | None] = mapped_column(String(128), index=True)
    location_ref: Mapped[str | None] = mapped_column(String(256))

    status: Mapped[RenderStatus] = mapped_column(
        Enum(
            RenderStatus,
            values_callable=lambda e: [x.value for x in e],
            name="renderstatus",
            native_enum=False,
            length=16,
        ),
        default=RenderStatus.PENDING,
    )
    progress: Mapped[int] = mapped_column(Integer, default=0)
    error_message: Mapped[str | None] = mapped_column(Text)
    artifact_url: Mapped[str | None] = mapped_column(String(1024))

    def __repr__(self) -> str:
        return f"<RenderState {self.render_id} status={self.status.value} progress={self.progress}>"
