"""APScheduler setup for periodic tasks."""

import datetime
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from busmap.config import settings

logger = logging.getLogger(__name__)


def create_scheduler(tracker, network=None) -> AsyncIOScheduler:
    """Create and configure the scheduler with all jobs."""
    scheduler = AsyncIOScheduler()

    # Poll the live feed every N seconds; a slow poll is never overlapped
    scheduler.add_job(
        tracker.poll_vehicles,
        "interval",
        seconds=settings.poll_interval_seconds,
        id="poll_vehicles",
        name="Poll realtime feed for vehicle positions",
        max_instances=1,
        coalesce=True,
        next_run_time=datetime.datetime.now(),
    )

    if network is not None:
        # Re-read stops and timetables every N hours
        scheduler.add_job(
            network.reload,
            "interval",
            hours=settings.schedule_refresh_hours,
            id="refresh_assets",
            name="Reload stop registry and timetables",
            max_instances=1,
        )

    logger.debug("Scheduler configured with %d job(s)", len(scheduler.get_jobs()))
    return scheduler
