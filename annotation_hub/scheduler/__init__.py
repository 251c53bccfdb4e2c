"""Background job scheduler module using APScheduler."""

from annotation_hub.scheduler.scheduler import create_scheduler, get_scheduler, register_jobs

__all__ = ["create_scheduler", "get_scheduler", "register_jobs"]
