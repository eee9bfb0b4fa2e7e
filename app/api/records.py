"""Generation record API endpoints."""

import uuid

from fastapi import APIRouter, HTTPException, status

from app.dependencies import AppServices
from app.schemas.job import JobAccepted
from app.schemas.record import (
    GenerationAccepted,
    GenerationRequest,
    HighlightsUpdate,
    RecordResponse,
    RegenerateVideoRequest,
)
from app.schemas.render import RenderStateResponse
from app.services.records import to_response

router = APIRouter()


@router.post(
    "/records",
    response_model=GenerationAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
async def submit_generation(body: GenerationRequest, services: AppServices) -> GenerationAccepted:
    """
    Start generating a changelog for a repository window.

    Returns immediately; poll GET /api/records/{id} for progress.
    """
    record_id = await services.controller.submit(body)
    record = await services.records.get(record_id)
    return GenerationAccepted(id=record_id, stage=record.stage)


@router.get("/records", response_model=list[RecordResponse])
async def list_records(services: AppServices, limit: int = 20) -> list[RecordResponse]:
    """Most recent records first."""
    records = await services.records.list_recent(limit=min(max(limit, 1), 100))
    return [to_response(r) for r in records]


@router.get("/records/{record_id}", response_model=RecordResponse)
async def get_record(record_id: uuid.UUID, services: AppServices) -> RecordResponse:
    record = await services.records.get(record_id)
    return to_response(record)


@router.put("/records/{record_id}/highlights", response_model=RecordResponse)
async def set_highlights(
    record_id: uuid.UUID, body: HighlightsUpdate, services: AppServices
) -> RecordResponse:
    """
    Replace the editor's highlight override.

    An empty list clears the override. Takes effect on the next render.
    """
    record = await services.records.set_manual_highlights(record_id, body.highlights)
    return to_response(record)


@router.post(
    "/records/{record_id}/video",
    response_model=JobAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
async def regenerate_video(
    record_id: uuid.UUID,
    services: AppServices,
    body: RegenerateVideoRequest | None = None,
) -> JobAccepted:
    """
    Re-render the record's video as a render-video job.

    Stats and summaries are reused. Poll GET /api/jobs/{jobId}.
    """
    body = body or RegenerateVideoRequest()
    job = await services.dispatcher.regenerate_video(
        record_id, force=body.force, callback_url=body.callback_url
    )
    return JobAccepted(job_id=job.id, status=job.status)


@router.get("/records/{record_id}/render", response_model=RenderStateResponse)
async def get_render_status(record_id: uuid.UUID, services: AppServices) -> RenderStateResponse:
    """Latest render attempt for the record."""
    await services.records.get(record_id)
    if services.orchestrator is None:
        raise HTTPException(status_code=404, detail="Video rendering is not configured")
    state = await services.orchestrator.get_render_status(record_id)
    if state is None:
        raise HTTPException(status_code=404, detail="No render for this record")
    return state
