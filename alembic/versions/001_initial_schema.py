"""Initial schema

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # Generation records
    op.create_table(
        "generation_records",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("repo_name", sa.String(256), nullable=False),
        sa.Column("repo_url", sa.String(512), nullable=False),
        sa.Column("branch", sa.String(256), nullable=True),
        sa.Column("time_window", sa.JSON(), nullable=False),
        sa.Column("window_label", sa.String(256), nullable=False),
        sa.Column("stage", sa.String(32), nullable=False, server_default="pending"),
        sa.Column("stage_message", sa.String(512), nullable=False, server_default="Queued"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("change_stats", sa.JSON(), nullable=True),
        sa.Column("contributors", sa.JSON(), nullable=True),
        sa.Column("commit_summaries", sa.JSON(), nullable=True),
        sa.Column("video_narrative", sa.JSON(), nullable=True),
        sa.Column("manual_highlights", sa.JSON(), nullable=True),
        sa.Column("artifact_url", sa.String(1024), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_generation_records_repo_name", "generation_records", ["repo_name"])
    op.create_index("ix_generation_records_created_at", "generation_records", ["created_at"])

    # Render attempts
    op.create_table(
        "render_states",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("record_id", sa.Uuid(), nullable=False),
        sa.Column("render_id", sa.String(128), nullable=True),
        sa.Column("location_ref", sa.String(256), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("artifact_url", sa.String(1024), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["record_id"], ["generation_records.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_render_states_record_id", "render_states", ["record_id"])
    op.create_index("ix_render_states_render_id", "render_states", ["render_id"])
    op.create_index("ix_render_states_created_at", "render_states", ["created_at"])

    # Async jobs
    op.create_table(
        "async_jobs",
        sa.Column("id", sa.String(32), nullable=False),
        sa.Column("type", sa.String(64), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="queued"),
        sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("params", sa.JSON(), nullable=False),
        sa.Column("result", sa.JSON(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("callback_url", sa.String(1024), nullable=True),
        sa.Column("record_id", sa.String(64), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_async_jobs_type", "async_jobs", ["type"])
    op.create_index("ix_async_jobs_status", "async_jobs", ["status"])
    op.create_index("ix_async_jobs_record_id", "async_jobs", ["record_id"])
    op.create_index("ix_async_jobs_created_at", "async_jobs", ["created_at"])


def downgrade() -> None:
    op.drop_table("async_jobs")
    op.drop_table("render_states")
    op.drop_table("generation_records")
