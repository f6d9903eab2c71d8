"""
Background reaper that evicts old terminal jobs from the ledger.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from engine.job_ledger import JobLedger

logger = logging.getLogger(__name__)


class Reaper:
    """
    Periodic sweep over the ledger.

    Each sweep snapshots the ids of Completed/Failed jobs whose completed_at
    is older than the retention window, then removes them one by one. Errors
    are logged and the next interval runs as usual; only stop() ends the loop.
    """

    def __init__(
        self,
        ledger: JobLedger,
        interval_seconds: float,
        max_age: timedelta,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._ledger = ledger
        self._interval = interval_seconds
        self._max_age = max_age
        self._clock = clock
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    def sweep(self) -> int:
        """Run one eviction pass and return the number of removed jobs."""
        cutoff = self._clock() - self._max_age
        candidates = self._ledger.terminal_older_than(cutoff)

        removed = 0
        for job_id in candidates:
            job = self._ledger.remove(job_id)
            if job is not None:
                removed += 1
                logger.debug(f"Removed old job {job_id} with status {job.status.value}, completed at {job.completed_at}")

        if removed:
            logger.info(
                f"Cleanup completed: removed {removed} jobs older than {self._max_age}. "
                f"Remaining jobs: {len(self._ledger)}"
            )
        else:
            logger.debug(f"Cleanup completed: no jobs to remove. Current job count: {len(self._ledger)}")
        return removed

    async def _loop(self) -> None:
        logger.info(f"Reaper started (interval={self._interval}s, max_age={self._max_age})")
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
                break
            except asyncio.TimeoutError:
                pass

            try:
                self.sweep()
            except Exception as e:
                logger.error(f"Error during job cleanup: {e}", exc_info=True)
        logger.info("Reaper stopped")

    def start(self) -> None:
        """Spawn the background loop on the running event loop."""
        if self._task is not None and not self._task.done():
            logger.warning("Reaper already running")
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop(), name="job-reaper")

    async def stop(self) -> None:
        """Signal the loop to exit and wait for it."""
        self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()
