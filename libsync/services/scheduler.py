"""Scheduler service - runs one-shot tasks after a delay.

Used for UX timing policies such as asking for the notification permission a
moment after the first signed-in screen appears, instead of during login.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional

from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

logger = logging.getLogger(__name__)


class SchedulerService:
    """Deferred task scheduler on the running asyncio loop."""

    def __init__(self):
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        """Start the scheduler. Must be called with an event loop running."""
        if self._running:
            return

        self.scheduler = AsyncIOScheduler(timezone=timezone.utc)
        self.scheduler.start()
        self._running = True
        logger.debug("Scheduler started")

    def stop(self):
        """Stop the scheduler, dropping jobs that have not run yet."""
        if self.scheduler and self._running:
            self.scheduler.shutdown(wait=False)
        self._running = False
        logger.debug("Scheduler stopped")

    def schedule_once(
        self,
        func: Callable[[], Awaitable[Any]],
        delay_seconds: float,
        job_id: str,
    ) -> Job:
        """Run `func` once, `delay_seconds` from now.

        Scheduling the same job_id again replaces the pending run.
        """
        if not self._running:
            self.start()

        run_date = datetime.now(timezone.utc) + timedelta(seconds=max(delay_seconds, 0))
        job = self.scheduler.add_job(
            func,
            trigger=DateTrigger(run_date=run_date),
            id=job_id,
            replace_existing=True,
            misfire_grace_time=60,
        )
        logger.debug(f"Scheduled {job_id} in {delay_seconds}s")
        return job

    def get_job(self, job_id: str) -> Optional[Job]:
        if not self.scheduler:
            return None
        return self.scheduler.get_job(job_id)

    def cancel(self, job_id: str) -> bool:
        """Cancel a pending job. Returns False if it already ran or never existed."""
        if self.get_job(job_id) is None:
            return False
        self.scheduler.remove_job(job_id)
        return True
