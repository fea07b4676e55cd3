"""
Background Scheduler
====================

APScheduler wrapper running one interval job at a time.
"""

from typing import Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from supportdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class IntervalJobScheduler:
    """
    Owns an AsyncIOScheduler with a single interval job.

    `max_instances=1` keeps scheduled runs from overlapping; runs triggered
    through the API are not coordinated with it.
    """

    def __init__(self, job_id: str, interval_seconds: int):
        self.job_id = job_id
        self.interval_seconds = interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def run_job(self, job_func: Callable[[], Awaitable[None]]) -> None:
        """Run one job invocation; failures are logged and the schedule continues."""
        try:
            await job_func()
        except Exception as e:
            logger.error(
                "Scheduled job failed",
                extra={"job_id": self.job_id, "error": str(e)},
                exc_info=True
            )

    async def start(self, job_func: Callable[[], Awaitable[None]]) -> None:
        if self._running:
            logger.warning("Scheduler already running", extra={"job_id": self.job_id})
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self.run_job,
            "interval",
            args=[job_func],
            seconds=self.interval_seconds,
            id=self.job_id,
            name=self.job_id.replace("_", " ").title(),
            misfire_grace_time=300,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        self._scheduler.start()
        self._running = True

        logger.info(
            "Scheduler started",
            extra={"job_id": self.job_id, "interval_seconds": self.interval_seconds}
        )

    async def stop(self) -> None:
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)

        self._running = False
        logger.info("Scheduler stopped", extra={"job_id": self.job_id})

    @property
    def is_running(self) -> bool:
        return self._running
