"""Background scheduler for periodic housekeeping."""

import structlog
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.config import settings
from app.middleware.rate_limit import AdmissionControl

logger = structlog.get_logger()

scheduler = BackgroundScheduler()

PURGE_JOB_ID = "purge_rate_limit_buckets"


def purge_rate_limit_buckets(admission: AdmissionControl) -> int:
    """Drop rate-limit buckets whose window has closed. Only affects memory use."""
    try:
        purged = admission.purge_expired()
    except Exception as e:
        logger.error("rate_limit_purge_failed", error=str(e))
        return 0
    if purged:
        logger.info("rate_limit_buckets_purged", count=purged, remaining=len(admission))
    return purged


def start_scheduler(admission: AdmissionControl) -> None:
    """Start the background scheduler."""
    scheduler.add_job(
        purge_rate_limit_buckets,
        trigger=IntervalTrigger(seconds=settings.rate_limit_purge_interval_seconds),
        args=[admission],
        id=PURGE_JOB_ID,
        replace_existing=True,
    )
    if not scheduler.running:
        scheduler.start()
    logger.info(
        "scheduler_started",
        purge_interval_seconds=settings.rate_limit_purge_interval_seconds,
    )


def shutdown_scheduler() -> None:
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
    logger.info("scheduler_stopped")
