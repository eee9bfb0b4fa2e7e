"""Storage backends for async jobs."""

from datetime import datetime
from typing import Any, Protocol

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.errors import PersistenceError
from app.core.logging import get_logger
from app.models.job import AsyncJob, JobStatus

logger = get_logger(__name__)

TERMINAL_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)
ACTIVE_STATUSES = (JobStatus.QUEUED, JobStatus.PROCESSING)


class JobStore(Protocol):
    """Persistence for AsyncJob rows. Jobs handed in carry all column values."""

    async def add(self, job: AsyncJob) -> AsyncJob: ...

    async def get(self, job_id: str) -> AsyncJob | None: ...

    async def update_if_active(self, job_id: str, values: dict[str, Any]) -> AsyncJob | None:
        """Apply ``values`` only while the job is queued or processing; None otherwise."""
        ...

    async def list(
        self, type: str | None = None, status: JobStatus | None = None, limit: int = 50
    ) -> list[AsyncJob]: ...

    async def find_active(
        self, record_id: str, type: str | None = None, exclude_id: str | None = None
    ) -> AsyncJob | None: ...

    async def delete_finished_before(self, cutoff: datetime) -> int: ...


class InMemoryJobStore:
    """Single-process job store."""

    def __init__(self) -> None:
        self._jobs: dict[str, AsyncJob] = {}

    async def add(self, job: AsyncJob) -> AsyncJob:
        self._jobs[job.id] = job
        return job

    async def get(self, job_id: str) -> AsyncJob | None:
        return self._jobs.get(job_id)

    async def update_if_active(self, job_id: str, values: dict[str, Any]) -> AsyncJob | None:
        job = self._jobs.get(job_id)
        if job is None or job.status not in ACTIVE_STATUSES:
            return None
        for key, value in values.items():
            setattr(job, key, value)
        return job

    async def list(
        self, type: str | None = None, status: JobStatus | None = None, limit: int = 50
    ) -> list[AsyncJob]:
        jobs = [
            j
            for j in self._jobs.values()
            if (type is None or j.type == type) and (status is None or j.status == status)
        ]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs[:limit]

    async def find_active(
        self, record_id: str, type: str | None = None, exclude_id: str | None = None
    ) -> AsyncJob | None:
        for job in sorted(self._jobs.values(), key=lambda j: j.created_at, reverse=True):
            if job.record_id != record_id or job.id == exclude_id:
                continue
            if job.status not in ACTIVE_STATUSES:
                continue
            if type is None or job.type == type:
                return job
        return None

    async def delete_finished_before(self, cutoff: datetime) -> int:
        stale = [
            job_id
            for job_id, job in self._jobs.items()
            if job.status in TERMINAL_STATUSES
            and job.completed_at is not None
            and job.completed_at < cutoff
        ]
        for job_id in stale:
            del self._jobs[job_id]
        return len(stale)


class SqlJobStore:
    """SQLAlchemy-backed job store; one short session per operation."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._sessions = session_factory

    async def add(self, job: AsyncJob) -> AsyncJob:
        try:
            async with self._sessions() as session:
                session.add(job)
                await session.commit()
                return job
        except SQLAlchemyError as e:
            logger.bind(job_id=job.id, error=str(e)).error("job_insert_failed")
            raise PersistenceError(f"Could not create job: {e}") from e

    async def get(self, job_id: str) -> AsyncJob | None:
        try:
            async with self._sessions() as session:
                return await session.get(AsyncJob, job_id)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not load job {job_id}: {e}") from e

    async def update_if_active(self, job_id: str, values: dict[str, Any]) -> AsyncJob | None:
        """
        Conditional UPDATE guarded on an active status.

        Zero matched rows means a concurrent writer already moved the job to a
        terminal status, and nothing is written.
        """
        try:
            async with self._sessions() as session:
                result = await session.execute(
                    update(AsyncJob)
                    .where(AsyncJob.id == job_id, AsyncJob.status.in_(ACTIVE_STATUSES))
                    .values(**values)
                )
                if result.rowcount != 1:
                    await session.rollback()
                    return None
                job = await session.get(AsyncJob, job_id)
                await session.commit()
                return job
        except SQLAlchemyError as e:
            logger.bind(job_id=job_id, error=str(e)).error("job_update_failed")
            raise PersistenceError(f"Could not update job {job_id}: {e}") from e

    async def list(
        self, type: str | None = None, status: JobStatus | None = None, limit: int = 50
    ) -> list[AsyncJob]:
        query = select(AsyncJob)
        if type is not None:
            query = query.where(AsyncJob.type == type)
        if status is not None:
            query = query.where(AsyncJob.status == status)
        query = query.order_by(AsyncJob.created_at.desc()).limit(limit)
        try:
            async with self._sessions() as session:
                result = await session.execute(query)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not list jobs: {e}") from e

    async def find_active(
        self, record_id: str, type: str | None = None, exclude_id: str | None = None
    ) -> AsyncJob | None:
        query = select(AsyncJob).where(
            AsyncJob.record_id == record_id,
            AsyncJob.status.in_(ACTIVE_STATUSES),
        )
        if type is not None:
            query = query.where(AsyncJob.type == type)
        if exclude_id is not None:
            query = query.where(AsyncJob.id != exclude_id)
        query = query.order_by(AsyncJob.created_at.desc()).limit(1)
        try:
            async with self._sessions() as session:
                result = await session.execute(query)
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not query jobs: {e}") from e

    async def delete_finished_before(self, cutoff: datetime) -> int:
        try:
            async with self._sessions() as session:
                result = await session.execute(
                    delete(AsyncJob).where(
                        AsyncJob.status.in_(TERMINAL_STATUSES),
                        AsyncJob.completed_at < cutoff,
                    )
                )
                await session.commit()
                return result.rowcount or 0
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not clean up jobs: {e}") from e
