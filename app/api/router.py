from fastapi import APIRouter

from app.api.jobs import router as jobs_router
from app.api.records import router as records_router
from app.api.renders import router as renders_router

api_router = APIRouter()

# API routes at /api/*
api_router.include_router(records_router, prefix="/api", tags=["records"])
api_router.include_router(renders_router, prefix="/api", tags=["renders"])
api_router.include_router(jobs_router, prefix="/api", tags=["jobs"])
