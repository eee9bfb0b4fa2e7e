"""Generation record persistence with validation at the storage boundary.

JSON columns are written from and read back into pydantic models; malformed
stored shapes surface as PersistenceError instead of leaking untyped dicts.
"""

import uuid
from collections.abc import Callable
from typing import Any, TypeVar

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.errors import PersistenceError, RecordNotFoundError, truncate_error
from app.core.logging import get_logger
from app.models.record import GenerationRecord, ProcessingStage, is_forward_transition
from app.schemas.github import RepoRef, RepoStats, TimeWindow
from app.schemas.record import (
    ChangeStats,
    CommitSummary,
    Highlight,
    RecordResponse,
    VideoNarrative,
)

T = TypeVar("T")

logger = get_logger(__name__)

_summaries_adapter = TypeAdapter(list[CommitSummary])
_highlights_adapter = TypeAdapter(list[Highlight])
_contributors_adapter = TypeAdapter(list[str])


def _validated(record: GenerationRecord, column: str, parse: Callable[[Any], T]) -> T:
    try:
        return parse(getattr(record, column))
    except ValidationError as e:
        logger.bind(record_id=str(record.id), column=column).error("record_column_malformed")
        raise PersistenceError(f"Malformed {column} on record {record.id}") from e


def time_window_of(record: GenerationRecord) -> TimeWindow:
    return _validated(record, "time_window", TimeWindow.model_validate)


def change_stats_of(record: GenerationRecord) -> ChangeStats | None:
    if record.change_stats is None:
        return None
    return _validated(record, "change_stats", ChangeStats.model_validate)


def contributors_of(record: GenerationRecord) -> list[str]:
    return _validated(record, "contributors", lambda v: _contributors_adapter.validate_python(v or []))


def summaries_of(record: GenerationRecord) -> list[CommitSummary]:
    return _validated(
        record, "commit_summaries", lambda v: _summaries_adapter.validate_python(v or [])
    )


def narrative_of(record: GenerationRecord) -> VideoNarrative | None:
    if record.video_narrative is None:
        return None
    return _validated(record, "video_narrative", VideoNarrative.model_validate)


def manual_highlights_of(record: GenerationRecord) -> list[Highlight] | None:
    if record.manual_highlights is None:
        return None
    return _validated(record, "manual_highlights", _highlights_adapter.validate_python)


def to_response(record: GenerationRecord) -> RecordResponse:
    """Build the public view, validating every JSON column."""
    return RecordResponse(
        id=record.id,
        repo_name=record.repo_name,
        repo_url=record.repo_url,
        branch=record.branch,
        window_label=record.window_label,
        stage=record.stage,
        stage_message=record.stage_message,
        error_message=record.error_message,
        content=record.content,
        change_stats=change_stats_of(record),
        contributors=contributors_of(record),
        commit_summaries=summaries_of(record),
        video_narrative=narrative_of(record),
        manual_highlights=manual_highlights_of(record),
        artifact_url=record.artifact_url,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


class RecordStore:
    """
    Read/write access to GenerationRecord rows.

    Each write opens its own short session so background pipeline tasks never
    share a session with request handlers.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._sessions = session_factory

    async def create(
        self, repo: RepoRef, window: TimeWindow, branch: str | None = None
    ) -> GenerationRecord:
        record = GenerationRecord(
            id=uuid.uuid4(),
            repo_name=repo.full_name,
            repo_url=repo.url,
            branch=branch,
            time_window=window.model_dump(mode="json"),
            window_label=window.describe(),
            stage=ProcessingStage.PENDING,
            stage_message="Queued",
        )
        try:
            async with self._sessions() as session:
                session.add(record)
                await session.commit()
        except SQLAlchemyError as e:
            logger.bind(repo=repo.full_name, error=str(e)).error("record_create_failed")
            raise PersistenceError(f"Could not create record: {e}") from e

        logger.bind(record_id=str(record.id), repo=repo.full_name).info("record_created")
        return record

    async def get(self, record_id: uuid.UUID) -> GenerationRecord:
        try:
            async with self._sessions() as session:
                record = await session.get(GenerationRecord, record_id)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not load record {record_id}: {e}") from e
        if record is None:
            raise RecordNotFoundError(f"Record {record_id} not found")
        return record

    async def list_recent(self, limit: int = 20) -> list[GenerationRecord]:
        try:
            async with self._sessions() as session:
                result = await session.execute(
                    select(GenerationRecord)
                    .order_by(GenerationRecord.created_at.desc())
                    .limit(limit)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not list records: {e}") from e

    async def _mutate(
        self, record_id: uuid.UUID, apply: Callable[[GenerationRecord], None]
    ) -> GenerationRecord:
        try:
            async with self._sessions() as session:
                record = await session.get(GenerationRecord, record_id)
                if record is None:
                    raise RecordNotFoundError(f"Record {record_id} not found")
                apply(record)
                await session.commit()
                return record
        except SQLAlchemyError as e:
            logger.bind(record_id=str(record_id), error=str(e)).error("record_write_failed")
            raise PersistenceError(f"Could not update record {record_id}: {e}") from e

    async def claim(self, record_id: uuid.UUID, message: str) -> bool:
        """
        Move a pending record to fetching_stats in one conditional write.

        Returns False when the record has already left pending, so only one
        pipeline run can own a record.
        """
        try:
            async with self._sessions() as session:
                result = await session.execute(
                    update(GenerationRecord)
                    .where(
                        GenerationRecord.id == record_id,
                        GenerationRecord.stage == ProcessingStage.PENDING,
                    )
                    .values(
                        stage=ProcessingStage.FETCHING_STATS,
                        stage_message=message,
                    )
                )
                await session.commit()
        except SQLAlchemyError as e:
            logger.bind(record_id=str(record_id), error=str(e)).error("record_write_failed")
            raise PersistenceError(f"Could not update record {record_id}: {e}") from e

        claimed = result.rowcount == 1
        logger.bind(record_id=str(record_id), claimed=claimed).info("record_claimed")
        return claimed

    async def advance(
        self, record_id: uuid.UUID, stage: ProcessingStage, message: str
    ) -> GenerationRecord:
        """Move the record forward to ``stage``. Backward moves are rejected."""

        def apply(record: GenerationRecord) -> None:
            if not is_forward_transition(record.stage, stage):
                raise PersistenceError(
                    f"Illegal stage transition {record.stage.value} -> {stage.value}"
                )
            record.stage = stage
            record.stage_message = message

        record = await self._mutate(record_id, apply)
        logger.bind(record_id=str(record_id), stage=stage.value).info("record_stage_changed")
        return record

    async def save_content(
        self,
        record_id: uuid.UUID,
        content: str,
        stats: RepoStats,
        change_stats: ChangeStats,
        summaries: list[CommitSummary],
    ) -> GenerationRecord:
        def apply(record: GenerationRecord) -> None:
            record.content = content
            record.change_stats = change_stats.model_dump(mode="json")
            record.contributors = list(stats.contributors)
            record.commit_summaries = [s.model_dump(mode="json") for s in summaries]

        return await self._mutate(record_id, apply)

    async def save_narrative(
        self, record_id: uuid.UUID, narrative: VideoNarrative
    ) -> GenerationRecord:
        def apply(record: GenerationRecord) -> None:
            record.video_narrative = narrative.model_dump(mode="json")

        return await self._mutate(record_id, apply)

    async def mark_failed(self, record_id: uuid.UUID, error: str | BaseException) -> GenerationRecord:
        message = truncate_error(error)

        def apply(record: GenerationRecord) -> None:
            if record.stage.is_terminal:
                raise PersistenceError(
                    f"Record {record_id} already {record.stage.value}, cannot mark failed"
                )
            record.stage = ProcessingStage.FAILED
            record.stage_message = "Failed"
            record.error_message = message

        record = await self._mutate(record_id, apply)
        logger.bind(record_id=str(record_id), error=message).error("record_failed")
        return record

    async def set_manual_highlights(
        self, record_id: uuid.UUID, highlights: list[Highlight] | None
    ) -> GenerationRecord:
        """Store (or clear, with None or []) the editor's highlight override."""

        def apply(record: GenerationRecord) -> None:
            record.manual_highlights = (
                [h.model_dump(mode="json") for h in highlights] if highlights else None
            )

        return await self._mutate(record_id, apply)

    async def set_artifact_url(self, record_id: uuid.UUID, url: str) -> GenerationRecord:
        """Render-owned field; writable on terminal records."""

        def apply(record: GenerationRecord) -> None:
            record.artifact_url = url

        return await self._mutate(record_id, apply)
