"""Async job API endpoints."""

from fastapi import APIRouter, Query, status
from pydantic import BaseModel

from app.core.scheduler import get_job_schedules
from app.dependencies import AppServices
from app.models.job import JobStatus, JobType
from app.schemas.job import JobCreate, JobResponse

router = APIRouter()


class ScheduleResponse(BaseModel):
    """Response model for a maintenance schedule."""

    id: str
    task_id: str
    trigger: str
    next_fire_time: str | None
    last_fire_time: str | None


@router.post("/jobs", response_model=JobResponse, status_code=status.HTTP_202_ACCEPTED)
async def create_job(body: JobCreate, services: AppServices) -> JobResponse:
    """Create a job and start it in the background."""
    record_id = body.params.get("record_id")
    job = await services.dispatcher.submit(
        body.type,
        body.params,
        callback_url=body.callback_url,
        record_id=str(record_id) if record_id else None,
    )
    return JobResponse.model_validate(job)


@router.get("/jobs", response_model=list[JobResponse])
async def list_jobs(
    services: AppServices,
    type: JobType | None = Query(default=None, description="Filter by job type"),
    job_status: JobStatus | None = Query(default=None, alias="status", description="Filter by status"),
    limit: int = Query(default=50, ge=1, le=200),
) -> list[JobResponse]:
    """List jobs, newest first."""
    jobs = await services.tracker.list(type=type, status=job_status, limit=limit)
    return [JobResponse.model_validate(j) for j in jobs]


@router.get("/jobs/schedules", response_model=list[ScheduleResponse])
async def list_schedules() -> list[ScheduleResponse]:
    """List registered maintenance schedules with next/last fire times."""
    schedules = await get_job_schedules()
    return [ScheduleResponse(**s) for s in schedules]


@router.get("/jobs/{job_id}", response_model=JobResponse)
async def get_job(job_id: str, services: AppServices) -> JobResponse:
    job = await services.tracker.get(job_id)
    return JobResponse.model_validate(job)


@router.post("/jobs/{job_id}/cancel", response_model=JobResponse)
async def cancel_job(job_id: str, services: AppServices) -> JobResponse:
    """
    Cancel a queued or processing job.

    Running work stops at its next progress checkpoint.
    """
    job = await services.tracker.cancel(job_id)
    return JobResponse.model_validate(job)
