from app.pipeline.content import assemble_content, build_fallback_overview, select_top_commits
from app.pipeline.highlights import derive_narrative

__all__ = [
    "assemble_content",
    "build_fallback_overview",
    "derive_narrative",
    "select_top_commits",
]
