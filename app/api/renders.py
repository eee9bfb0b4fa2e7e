"""Render backend push notifications."""

from fastapi import APIRouter, Header, HTTPException, status

from app.dependencies import AppServices
from app.schemas.render import RenderCallback, RenderStateResponse

router = APIRouter()


@router.post("/renders/callback", response_model=RenderStateResponse)
async def render_callback(
    body: RenderCallback,
    services: AppServices,
    authorization: str | None = Header(default=None),
) -> RenderStateResponse:
    """
    Completion callback from the render backend.

    Applies the reported outcome once; repeated callbacks for a finished
    render are acknowledged without changes.
    """
    if services.orchestrator is None:
        raise HTTPException(status_code=404, detail="Video rendering is not configured")

    token = services.config.render.backend_token
    if token and authorization != f"Bearer {token}":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    state = await services.orchestrator.handle_callback(body)
    if state is None:
        raise HTTPException(status_code=404, detail=f"Unknown render {body.render_id}")
    return state
