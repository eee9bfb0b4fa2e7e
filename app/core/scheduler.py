"""
APScheduler integration for FastAPI.

Runs periodic maintenance in-process.

Jobs:
- Job cleanup: Deletes finished async jobs older than the retention window (top of every hour)
"""

from typing import Any

from apscheduler import AsyncScheduler, ConflictPolicy
from apscheduler.datastores.memory import MemoryDataStore
from apscheduler.triggers.cron import CronTrigger

from app.config import get_config, get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)

# Global scheduler instance
scheduler: AsyncScheduler | None = None


async def job_cleanup_job() -> None:
    """Hourly cleanup of finished async jobs."""
    from app.dependencies import get_services

    hours = get_config().jobs.cleanup_after_hours
    logger.debug("scheduled_job_cleanup_started")
    try:
        deleted = await get_services().tracker.cleanup(older_than_hours=hours)
        logger.bind(deleted=deleted).info("scheduled_job_cleanup_completed")
    except Exception as e:
        logger.bind(error=str(e)).error("scheduled_job_cleanup_failed")
        raise  # Re-raise so APScheduler records the failure


async def start_scheduler() -> AsyncScheduler | None:
    """Initialize and start the scheduler."""
    global scheduler

    settings = get_settings()
    if not settings.scheduler_enabled:
        logger.info("scheduler_disabled_by_config")
        return None

    # Schedules are re-registered on every start, nothing to persist
    data_store = MemoryDataStore()
    scheduler = AsyncScheduler(data_store=data_store)

    # Start the scheduler first (required before calling other methods in APScheduler 4.x)
    await scheduler.__aenter__()

    await scheduler.add_schedule(
        job_cleanup_job,
        CronTrigger(minute=0),
        id="job_cleanup",
        conflict_policy=ConflictPolicy.replace,  # Update if already exists
    )

    # Start the scheduler's background worker to actually process jobs
    await scheduler.start_in_background()

    logger.bind(jobs=["job_cleanup"]).info("scheduler_started")
    return scheduler


async def stop_scheduler() -> None:
    """Gracefully stop the scheduler."""
    global scheduler
    if scheduler:
        await scheduler.__aexit__(None, None, None)
        logger.info("scheduler_stopped")
        scheduler = None


async def get_job_schedules() -> list[dict[str, Any]]:
    """Get all registered job schedules."""
    if not scheduler:
        return []

    schedules = await scheduler.get_schedules()
    return [
        {
            "id": s.id,
            "task_id": s.task_id,
            "trigger": str(s.trigger),
            "next_fire_time": s.next_fire_time.isoformat() if s.next_fire_time else None,
            "last_fire_time": s.last_fire_time.isoformat() if s.last_fire_time else None,
        }
        for s in schedules
    ]
