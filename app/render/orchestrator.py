"""
Video render orchestration.

Drives the remote render backend for a generation record: reuses an existing
artifact when allowed, refuses a second concurrent render for the same record,
triggers the backend and then observes progress either by bounded polling or
through backend callbacks.

A render that fails or times out is recorded on its RenderState only; the
owning record keeps whatever stage it already reached.
"""

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from datetime import timedelta

import httpx
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.datetime_utils import utc_now
from app.core.errors import (
    PersistenceError,
    RenderInProgressError,
    RenderTimeoutError,
    RenderTriggerError,
    truncate_error,
)
from app.core.logging import get_logger
from app.models.record import GenerationRecord
from app.models.render import RenderState, RenderStatus
from app.pipeline.highlights import derive_narrative
from app.pipeline.interfaces import ArtifactStore, RenderBackend, Summarizer
from app.schemas.record import VideoNarrative
from app.schemas.render import (
    RenderCallback,
    RenderOptions,
    RenderProgress,
    RenderStateResponse,
)
from app.services.records import RecordStore, manual_highlights_of, summaries_of

logger = get_logger(__name__)

ProgressCallback = Callable[[int], Awaitable[None]]


def to_state_response(state: RenderState, reused: bool = False) -> RenderStateResponse:
    return RenderStateResponse(
        id=state.id,
        record_id=state.record_id,
        render_id=state.render_id,
        status=state.status,
        progress=state.progress,
        error_message=state.error_message,
        artifact_url=state.artifact_url,
        reused=reused,
        created_at=state.created_at,
        updated_at=state.updated_at,
    )


class RenderOrchestrator:
    """Starts and tracks renders; at most one non-terminal render per record."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        records: RecordStore,
        backend: RenderBackend,
        summarizer: Summarizer,
        artifacts: ArtifactStore,
        max_poll_attempts: int = 60,
        poll_interval_seconds: float = 5.0,
        min_content_length: int = 100,
        release_tag: str = "Latest Update",
        lang_code: str = "en",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._sessions = session_factory
        self.records = records
        self.backend = backend
        self.summarizer = summarizer
        self.artifacts = artifacts
        self.max_poll_attempts = max_poll_attempts
        self.poll_interval_seconds = poll_interval_seconds
        self.min_content_length = min_content_length
        self.release_tag = release_tag
        self.lang_code = lang_code
        self._sleep = sleep
        # Guards the check-then-insert of a pending RenderState
        self._start_lock = asyncio.Lock()

    @property
    def stale_after(self) -> timedelta:
        """A non-terminal render untouched for twice the poll ceiling is abandoned."""
        return timedelta(seconds=2 * self.max_poll_attempts * self.poll_interval_seconds)

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    async def _latest_state(
        self, session: AsyncSession, record_id: uuid.UUID, active_only: bool = False
    ) -> RenderState | None:
        query = select(RenderState).where(RenderState.record_id == record_id)
        if active_only:
            query = query.where(
                RenderState.status.in_((RenderStatus.PENDING, RenderStatus.RENDERING))
            )
        query = query.order_by(RenderState.created_at.desc()).limit(1)
        result = await session.execute(query)
        return result.scalar_one_or_none()

    async def _load(self, state_id: uuid.UUID) -> RenderState:
        try:
            async with self._sessions() as session:
                state = await session.get(RenderState, state_id)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not load render {state_id}: {e}") from e
        if state is None:
            raise PersistenceError(f"Render state {state_id} not found")
        return state

    async def _mark_failed(self, state_id: uuid.UUID, error: str) -> RenderState:
        try:
            async with self._sessions() as session:
                state = await session.get(RenderState, state_id)
                if state is None:
                    raise PersistenceError(f"Render state {state_id} not found")
                if not state.status.is_terminal:
                    state.status = RenderStatus.FAILED
                    state.error_message = truncate_error(error)
                    await session.commit()
                return state
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not update render {state_id}: {e}") from e

    async def _claim_slot(self, record_id: uuid.UUID) -> RenderState:
        """Insert a pending RenderState unless the record already has an active one."""
        async with self._start_lock:
            try:
                async with self._sessions() as session:
                    active = await self._latest_state(session, record_id, active_only=True)
                    if active is not None:
                        if active.updated_at >= utc_now() - self.stale_after:
                            raise RenderInProgressError(
                                f"Render {active.render_id or active.id} already in progress "
                                f"for record {record_id}"
                            )
                        active.status = RenderStatus.FAILED
                        active.error_message = "Render abandoned"
                        logger.bind(record_id=str(record_id), state_id=str(active.id)).warning(
                            "render_abandoned"
                        )
                    now = utc_now()
                    state = RenderState(
                        id=uuid.uuid4(),
                        record_id=record_id,
                        status=RenderStatus.PENDING,
                        progress=0,
                        created_at=now,
                        updated_at=now,
                    )
                    session.add(state)
                    await session.commit()
                    return state
            except SQLAlchemyError as e:
                raise PersistenceError(f"Could not create render state: {e}") from e

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def has_active_render(self, record_id: uuid.UUID) -> bool:
        async with self._sessions() as session:
            active = await self._latest_state(session, record_id, active_only=True)
        return active is not None and active.updated_at >= utc_now() - self.stale_after

    async def abandon_render(self, state_id: uuid.UUID, reason: str) -> RenderState:
        """Fail a render nobody will poll again so the record can be re-rendered."""
        state = await self._mark_failed(state_id, reason)
        logger.bind(record_id=str(state.record_id), state_id=str(state_id), reason=reason).warning(
            "render_abandoned"
        )
        return state

    async def get_render_status(self, record_id: uuid.UUID) -> RenderStateResponse | None:
        """Latest render attempt for a record, if any."""
        async with self._sessions() as session:
            state = await self._latest_state(session, record_id)
        return to_state_response(state) if state else None

    async def resolve_narrative(
        self, record: GenerationRecord, options: RenderOptions
    ) -> VideoNarrative:
        manual = options.highlights_override or manual_highlights_of(record)
        return await derive_narrative(
            manual=manual,
            content=record.content,
            summaries=summaries_of(record),
            repo_name=record.repo_name,
            summarizer=self.summarizer,
            min_content_length=self.min_content_length,
        )

    async def start_render(
        self,
        record_id: uuid.UUID,
        options: RenderOptions | None = None,
        narrative: VideoNarrative | None = None,
    ) -> RenderStateResponse:
        """
        Start a render for ``record_id`` without waiting for it to finish.

        Args:
            record_id: Owning generation record
            options: Reuse/force flags and an optional highlight override
            narrative: Already-derived narrative; derived from the record if omitted

        Returns:
            A ``rendering`` state, or a ``succeeded`` state with ``reused=True``
            when the existing artifact was returned without calling the backend

        Raises:
            RenderInProgressError: The record already has an active render
            RenderTriggerError: No narrative, or the backend refused the render
        """
        options = options or RenderOptions()
        record = await self.records.get(record_id)
        log = logger.bind(record_id=str(record_id), repo=record.repo_name)

        if await self.has_active_render(record_id):
            raise RenderInProgressError(f"A render is already in progress for record {record_id}")

        if options.reuse_existing and not options.force and record.artifact_url:
            reusable = True
            if self.artifacts.is_configured():
                reusable = await self.artifacts.exists(record.artifact_url)
            if reusable:
                log.bind(artifact_url=record.artifact_url).info("render_reused")
                now = utc_now()
                return RenderStateResponse(
                    id=None,
                    record_id=record_id,
                    render_id=None,
                    status=RenderStatus.SUCCEEDED,
                    progress=100,
                    error_message=None,
                    artifact_url=record.artifact_url,
                    reused=True,
                    created_at=now,
                    updated_at=now,
                )
            log.bind(artifact_url=record.artifact_url).info("render_artifact_missing")

        if narrative is None or options.highlights_override:
            narrative = await self.resolve_narrative(record, options)
        if narrative.is_empty:
            log.info("render_skipped_no_narrative")
            raise RenderTriggerError("No video narrative available")
        await self.records.save_narrative(record_id, narrative)

        state = await self._claim_slot(record_id)
        metadata = {
            "record_id": str(record_id),
            "repo_name": record.repo_name,
            "release_tag": self.release_tag,
            "lang_code": self.lang_code,
        }

        try:
            triggered = await self.backend.trigger(narrative, metadata)
        except Exception as e:
            await self._mark_failed(state.id, str(e))
            log.bind(error=str(e)).error("render_trigger_failed")
            if isinstance(e, RenderTriggerError):
                raise
            raise RenderTriggerError(truncate_error(e)) from e

        try:
            async with self._sessions() as session:
                stored = await session.get(RenderState, state.id)
                stored.render_id = triggered.render_id
                stored.location_ref = triggered.location_ref
                stored.status = RenderStatus.RENDERING
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not update render {state.id}: {e}") from e

        log.bind(render_id=triggered.render_id, source=narrative.source).info("render_started")
        return to_state_response(stored)

    async def apply_progress(self, state_id: uuid.UUID, progress: RenderProgress) -> RenderState:
        """
        Apply one backend observation. Terminal states are never changed.

        Success resolves the artifact URL and writes it to both the render
        state and the owning record.
        """
        try:
            async with self._sessions() as session:
                state = await session.get(RenderState, state_id)
                if state is None:
                    raise PersistenceError(f"Render state {state_id} not found")
                if state.status.is_terminal:
                    return state

                log = logger.bind(record_id=str(state.record_id), render_id=state.render_id)
                artifact_url = None
                if progress.status == "succeeded":
                    artifact_url = progress.artifact_url
                    if not artifact_url and progress.output_key:
                        artifact_url = self.artifacts.public_url(
                            progress.output_key, state.location_ref
                        )
                    if not artifact_url:
                        state.status = RenderStatus.FAILED
                        state.error_message = "Render succeeded without an artifact"
                    else:
                        state.status = RenderStatus.SUCCEEDED
                        state.progress = 100
                        state.artifact_url = artifact_url
                elif progress.status == "failed":
                    state.status = RenderStatus.FAILED
                    state.error_message = truncate_error(progress.error or "Render failed")
                else:
                    state.status = RenderStatus.RENDERING
                    state.progress = max(state.progress, progress.progress)
                state.updated_at = utc_now()
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not update render {state_id}: {e}") from e

        if state.status is RenderStatus.SUCCEEDED:
            await self.records.set_artifact_url(state.record_id, state.artifact_url)
            log.bind(artifact_url=state.artifact_url).info("render_succeeded")
        elif state.status is RenderStatus.FAILED:
            log.bind(error=state.error_message).error("render_failed")
        return state

    async def wait_for_render(
        self, state_id: uuid.UUID, on_progress: ProgressCallback | None = None
    ) -> RenderStateResponse:
        """
        Poll the backend until the render is terminal.

        At most ``max_poll_attempts`` polls, ``poll_interval_seconds`` apart.
        Transient status-check errors count as attempts.

        Raises:
            RenderTimeoutError: Still not terminal after the last poll; the
                render state is marked failed first
        """
        state = await self._load(state_id)
        log = logger.bind(record_id=str(state.record_id), render_id=state.render_id)

        for attempt in range(1, self.max_poll_attempts + 1):
            state = await self._load(state_id)
            if state.status.is_terminal:
                return to_state_response(state)

            try:
                observed = await self.backend.status(state.render_id, state.location_ref)
            except (httpx.HTTPError, ValueError) as e:
                log.bind(attempt=attempt, error=str(e)).warning("render_status_check_failed")
            else:
                state = await self.apply_progress(state_id, observed)
                if state.status.is_terminal:
                    return to_state_response(state)
                if on_progress is not None:
                    await on_progress(state.progress)

            if attempt < self.max_poll_attempts:
                await self._sleep(self.poll_interval_seconds)

        ceiling = self.max_poll_attempts * self.poll_interval_seconds
        message = f"Render did not finish within {ceiling:g} seconds ({self.max_poll_attempts} polls)"
        await self._mark_failed(state_id, message)
        log.bind(attempts=self.max_poll_attempts).error("render_timed_out")
        raise RenderTimeoutError(message)

    async def handle_callback(self, callback: RenderCallback) -> RenderStateResponse | None:
        """
        Push path from the render backend.

        Returns None for unknown render ids. Callbacks for renders that are
        already terminal are ignored.
        """
        async with self._sessions() as session:
            result = await session.execute(
                select(RenderState).where(RenderState.render_id == callback.render_id)
            )
            state = result.scalar_one_or_none()
        if state is None:
            logger.bind(render_id=callback.render_id).warning("render_callback_unknown")
            return None
        if state.status.is_terminal:
            logger.bind(render_id=callback.render_id).debug("render_callback_ignored_terminal")
            return to_state_response(state)

        observed = RenderProgress(
            status=callback.status,
            progress=callback.progress,
            artifact_url=callback.artifact_url,
            output_key=callback.output_key,
            error=callback.error,
        )
        state = await self.apply_progress(state.id, observed)
        return to_state_response(state)
