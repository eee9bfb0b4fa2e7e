"""Video render orchestration against a remote media backend."""

from app.render.backend import HttpRenderBackend
from app.render.orchestrator import RenderOrchestrator
from app.render.storage import S3ArtifactStore

__all__ = ["HttpRenderBackend", "RenderOrchestrator", "S3ArtifactStore"]
