from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.router import api_router
from app.config import get_settings
from app.core.errors import (
    InvalidRequestError,
    JobNotFoundError,
    JobStateError,
    PersistenceError,
    RecordNotFoundError,
    RenderInProgressError,
    RepatchError,
)
from app.core.logging import get_logger, setup_logging
from app.core.scheduler import start_scheduler, stop_scheduler
from app.dependencies import shutdown_services

logger = get_logger(__name__)

settings = get_settings()

ERROR_STATUS: dict[type[RepatchError], int] = {
    RecordNotFoundError: status.HTTP_404_NOT_FOUND,
    JobNotFoundError: status.HTTP_404_NOT_FOUND,
    JobStateError: status.HTTP_409_CONFLICT,
    RenderInProgressError: status.HTTP_409_CONFLICT,
    InvalidRequestError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    PersistenceError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    # Startup
    setup_logging()
    await start_scheduler()
    yield
    # Shutdown
    await stop_scheduler()
    await shutdown_services()


app = FastAPI(
    title="Repatch",
    description="Changelog and video generation API",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/api/docs" if settings.debug else None,
    redoc_url="/api/redoc" if settings.debug else None,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.base_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RepatchError)
async def repatch_error_handler(request: Request, exc: RepatchError) -> JSONResponse:
    """Map application errors onto HTTP status codes."""
    code = next(
        (c for err, c in ERROR_STATUS.items() if isinstance(exc, err)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    log = logger.bind(path=request.url.path, error=str(exc), error_type=type(exc).__name__)
    if code >= 500:
        log.error("request_failed")
    else:
        log.debug("request_rejected")
    return JSONResponse(status_code=code, content={"detail": str(exc)})


# Include API routes
app.include_router(api_router)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint for load balancers."""
    return {"status": "healthy"}
