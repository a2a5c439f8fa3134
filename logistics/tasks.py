"""
LOGISTICS App - Celery Tasks

Periodic cleanup of courier telemetry.
"""

import logging
from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def purge_expired_locations(self):
    """
    Delete location records older than LOCATION_RETENTION_DAYS.

    Scheduled hourly in CELERY_BEAT_SCHEDULE.
    """
    from logistics.services.tracking import LocationTracker

    try:
        deleted = LocationTracker.purge_expired()
    except Exception as exc:
        logger.error(f"[CELERY] Location purge failed: {exc}")
        raise self.retry(exc=exc)

    logger.info(f"[CELERY] Purged {deleted} expired location records")
    return deleted
