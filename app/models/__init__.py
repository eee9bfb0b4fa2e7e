from app.models.base import Base
from app.models.job import AsyncJob, JobStatus, JobType
from app.models.record import GenerationRecord, ProcessingStage
from app.models.render import RenderState, RenderStatus

__all__ = [
    "Base",
    "GenerationRecord",
    "ProcessingStage",
    "RenderState",
    "RenderStatus",
    "AsyncJob",
    "JobStatus",
    "JobType",
]
