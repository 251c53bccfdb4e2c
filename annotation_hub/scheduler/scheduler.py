"""
APScheduler setup and configuration.

Jobs run in-process on the event loop with an in-memory job store.
"""

from typing import Any

from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from annotation_hub.core.config import settings
from annotation_hub.log.logging import logger

# Global scheduler instance
_scheduler: AsyncIOScheduler | None = None


def create_scheduler() -> AsyncIOScheduler:
    """Create and configure the APScheduler instance."""
    global _scheduler

    if _scheduler is not None:
        return _scheduler

    _scheduler = AsyncIOScheduler(
        jobstores={"default": MemoryJobStore()},
        executors={"default": AsyncIOExecutor()},
        job_defaults={
            "coalesce": True,  # Combine missed runs into one
            "max_instances": 1,  # Prevent overlapping executions
            "misfire_grace_time": 600,
        },
        timezone=settings.scheduler_timezone,
    )

    logger.info("Scheduler created", event_type="scheduler_created")
    return _scheduler


def get_scheduler() -> AsyncIOScheduler | None:
    """Get the global scheduler instance."""
    return _scheduler


def register_jobs(scheduler: AsyncIOScheduler | None) -> None:
    """
    Register all scheduled jobs.

    Jobs are only registered if scheduler is enabled in settings.
    """
    if not settings.scheduler_enabled or scheduler is None:
        logger.info("Scheduler disabled, skipping job registration")
        return

    from annotation_hub.scheduler.jobs.maintenance import (
        mark_overdue_invoices,
        purge_expired_deletion_otps,
    )

    scheduler.add_job(
        mark_overdue_invoices,
        "interval",
        minutes=settings.overdue_sweep_interval_minutes,
        id="mark_overdue_invoices",
        name="Mark overdue invoices",
        replace_existing=True,
    )

    scheduler.add_job(
        purge_expired_deletion_otps,
        "interval",
        minutes=settings.otp_purge_interval_minutes,
        id="purge_expired_deletion_otps",
        name="Purge expired deletion OTPs",
        replace_existing=True,
    )

    job_count = len(scheduler.get_jobs())
    logger.info(
        f"Registered {job_count} scheduled jobs",
        event_type="scheduler_jobs_registered",
        job_count=job_count,
    )


async def start_scheduler() -> None:
    """Start the scheduler if enabled."""
    global _scheduler

    if not settings.scheduler_enabled:
        logger.info("Scheduler disabled, not starting")
        return

    if _scheduler is None:
        register_jobs(create_scheduler())

    if not _scheduler.running:
        _scheduler.start()
        logger.info("Scheduler started", event_type="scheduler_started")


async def stop_scheduler() -> None:
    """Stop the scheduler gracefully."""
    if _scheduler is not None and _scheduler.running:
        _scheduler.shutdown(wait=True)
        logger.info("Scheduler stopped", event_type="scheduler_stopped")


def _next_run(job) -> str | None:
    # Jobs added before start have no next_run_time yet
    next_run = getattr(job, "next_run_time", None)
    return next_run.isoformat() if next_run else None


def get_all_jobs() -> list[dict[str, Any]]:
    """Get information about all scheduled jobs."""
    if _scheduler is None:
        return []
    return [
        {
            "id": job.id,
            "name": job.name,
            "next_run_time": _next_run(job),
            "trigger": str(job.trigger),
            "pending": job.pending,
        }
        for job in _scheduler.get_jobs()
    ]
