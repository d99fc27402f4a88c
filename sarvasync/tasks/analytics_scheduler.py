# sarvasync/tasks/analytics_scheduler.py
"""Daily analytics sync loop, run as a background task of the API process."""
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog

from sarvasync.config import get_settings
from sarvasync.infrastructure.google_client import get_google_client
from sarvasync.models.linked_account import AuthProvider
from sarvasync.services.analytics_sync import AnalyticsSyncService

logger = structlog.get_logger(__name__)


def seconds_until(hour: int, minute: int, now: Optional[datetime] = None) -> float:
    """Seconds from ``now`` to the next HH:MM UTC; a time that has passed today rolls to tomorrow."""
    now = now or datetime.now(timezone.utc)
    target = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


def default_sync_service() -> AnalyticsSyncService:
    return AnalyticsSyncService(clients={AuthProvider.GOOGLE: get_google_client()})


async def analytics_scheduler_task(service: Optional[AnalyticsSyncService] = None, run_on_startup: Optional[bool] = None):
    s = get_settings()
    service = service or default_sync_service()
    if run_on_startup is None:
        run_on_startup = s.sync_on_startup

    logger.info(
        "analytics_scheduler_started",
        hour=s.ANALYTICS_SYNC_HOUR,
        minute=s.ANALYTICS_SYNC_MINUTE,
        run_on_startup=run_on_startup,
    )
    try:
        if run_on_startup:
            await service.run()
        while True:
            delay = seconds_until(s.ANALYTICS_SYNC_HOUR, s.ANALYTICS_SYNC_MINUTE)
            logger.info("analytics_sync_next_run", in_seconds=int(delay))
            await asyncio.sleep(delay)
            await service.run()
    except asyncio.CancelledError:
        logger.info("analytics_scheduler_stopped")
        raise


def start_analytics_scheduler() -> Optional[asyncio.Task]:
    if not get_settings().ANALYTICS_SYNC_ENABLED:
        logger.info("analytics_scheduler_disabled")
        return None
    return asyncio.create_task(analytics_scheduler_task(), name="analytics-sync")


async def stop_analytics_scheduler(task: Optional[asyncio.Task]) -> None:
    if task is None:
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
