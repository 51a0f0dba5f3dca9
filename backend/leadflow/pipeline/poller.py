"""Background job-status polling on APScheduler."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

# Returns True while there is still work worth polling for
PollTick = Callable[[], Awaitable[bool]]


class JobPoller:
    """Runs a tick on an interval until the tick reports nothing is active.

    Polling is explicit: ``start()`` registers the interval job and
    ``stop()`` removes it. A tick returning False stops polling on its own.
    Must be started from inside a running event loop.
    """

    def __init__(
        self,
        tick: PollTick,
        interval_seconds: float = 2.0,
        job_id: str = "pipeline-poll",
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        self._tick = tick
        self.interval_seconds = interval_seconds
        self.job_id = job_id
        self._owns_scheduler = scheduler is None
        self.scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def kick_job_id(self) -> str:
        return f"{self.job_id}-kick"

    @property
    def is_polling(self) -> bool:
        return self.scheduler.get_job(self.job_id) is not None

    def _ensure_running(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()

    def start(self) -> None:
        """Register the interval job if it is not already running."""
        if self.is_polling:
            return
        self._ensure_running()
        self.scheduler.add_job(
            self.poll_once,
            IntervalTrigger(seconds=self.interval_seconds),
            id=self.job_id,
            name=f"Poll: {self.job_id}",
            coalesce=True,
            max_instances=1,
            replace_existing=True,
        )
        self._idle.clear()
        logger.debug(f"Polling started: {self.job_id} (every {self.interval_seconds}s)")

    def stop(self) -> None:
        """Remove the interval job and any pending follow-up."""
        for job_id in (self.job_id, self.kick_job_id):
            if self.scheduler.get_job(job_id) is not None:
                self.scheduler.remove_job(job_id)
        if not self._idle.is_set():
            logger.debug(f"Polling stopped: {self.job_id}")
        self._idle.set()

    def kick(self, delay_seconds: float = 0.0) -> None:
        """Schedule one follow-up tick and make sure polling is running."""
        self._ensure_running()
        run_date = datetime.now(timezone.utc) + timedelta(seconds=max(0.0, delay_seconds))
        self.scheduler.add_job(
            self.poll_once,
            DateTrigger(run_date=run_date),
            id=self.kick_job_id,
            name=f"Follow-up: {self.job_id}",
            misfire_grace_time=None,
            replace_existing=True,
        )
        self.start()

    async def poll_once(self) -> bool:
        """Run one tick; stop polling when it reports no active work."""
        try:
            active = await self._tick()
        except Exception:
            # Keep polling; the next tick retries
            logger.exception(f"Poll tick failed: {self.job_id}")
            active = True
        if not active:
            self.stop()
        return active

    async def wait_idle(self) -> None:
        """Wait until polling stops."""
        await self._idle.wait()

    def shutdown(self) -> None:
        self.stop()
        if self._owns_scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
