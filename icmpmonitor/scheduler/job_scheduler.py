"""Tick delivery using APScheduler."""

import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MAX_INSTANCES, EVENT_JOB_MISSED, JobEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

PROBE_JOB_ID = "probe_pass"

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None


def _job_listener(event: JobEvent) -> None:
    """Log ticks that failed or could not run."""
    exception = getattr(event, "exception", None)
    if exception:
        logger.error(
            "Job %s failed with exception: %s",
            event.job_id,
            exception,
        )
    else:
        logger.warning("Job %s skipped a tick", event.job_id)


def create_scheduler() -> AsyncIOScheduler:
    """Create and configure the scheduler.

    Jobs live in the default in-memory store; nothing survives a restart.

    Returns:
        Configured AsyncIOScheduler instance.
    """
    job_defaults = {
        "coalesce": True,  # Combine missed ticks into one
        "max_instances": 1,  # A pass never overlaps the previous one
        "misfire_grace_time": None,  # A late tick still runs
    }

    return AsyncIOScheduler(
        job_defaults=job_defaults,
        timezone="UTC",
    )


def start_scheduler(tick_job: Callable[[], Awaitable[None]], tick_seconds: int) -> AsyncIOScheduler:
    """Start delivering ticks to the probe pass.

    Args:
        tick_job: Coroutine function run once per tick.
        tick_seconds: Tick period in seconds.

    Returns:
        The running scheduler.
    """
    global scheduler

    scheduler = create_scheduler()
    scheduler.add_listener(
        _job_listener,
        EVENT_JOB_ERROR | EVENT_JOB_MISSED | EVENT_JOB_MAX_INSTANCES,
    )

    # First pass immediately, then every tick
    scheduler.add_job(
        tick_job,
        trigger=IntervalTrigger(seconds=tick_seconds),
        id=PROBE_JOB_ID,
        name="ICMP Probe Pass",
        next_run_time=datetime.now(timezone.utc),
        replace_existing=True,
    )
    logger.info("Scheduled probe pass every %d second(s)", tick_seconds)

    scheduler.start()
    return scheduler


def shutdown_scheduler() -> None:
    """Stop delivering ticks; an in-flight pass is abandoned."""
    global scheduler

    if scheduler and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler shutdown complete")
    scheduler = None


def get_scheduler() -> Optional[AsyncIOScheduler]:
    """Get the current scheduler instance.

    Returns:
        The scheduler instance or None if not started.
    """
    return scheduler


def get_jobs_info() -> list:
    """Get information about scheduled jobs.

    Returns:
        List of job information dictionaries.
    """
    if not scheduler:
        return []

    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
            "trigger": str(job.trigger),
        })

    return jobs
