"""
Async job scheduling for batch transcription.

Admits jobs against the capacity ceiling, records them in the ledger and
runs each one as a tracked background task. True parallelism is bounded by
the worker pool inside the processor, not here.
"""

import asyncio
import logging
from typing import Set

from engine.admission import AdmissionController
from engine.job_ledger import JobLedger
from engine.job_processor import JobProcessor
from utils.exceptions import CapacityExceededError

logger = logging.getLogger(__name__)


class JobQueue:
    """
    Admission + scheduling front door for batch jobs.

    submit() is synchronous: the capacity check and the ledger insert happen
    without yielding to the event loop, so concurrent submitters can never
    push the ledger past max_queue_size.
    """

    def __init__(self, ledger: JobLedger, admission: AdmissionController, processor: JobProcessor):
        self._ledger = ledger
        self._admission = admission
        self._processor = processor
        self._tasks: Set[asyncio.Task] = set()
        self._running = True

    def submit(self, input_path: str) -> str:
        """
        Admit a job for the stored artifact at `input_path` and schedule it.

        Must be called from within the running event loop.

        Returns:
            The new job id.

        Raises:
            CapacityExceededError: If active + queued jobs already fill the queue.
            RuntimeError: If the queue has been stopped.
        """
        if not self._running:
            raise RuntimeError("Job queue is stopped")

        snapshot = self._admission.snapshot()
        if snapshot.at_capacity:
            logger.warning(
                f"Rejecting job: at capacity (active={snapshot.active_jobs}, "
                f"queued={snapshot.queued_jobs}, max={snapshot.max_queue_size})"
            )
            raise CapacityExceededError(snapshot.active_jobs, snapshot.queued_jobs, snapshot.max_queue_size)

        job_id = self._ledger.create()
        task = asyncio.create_task(self._run(job_id, input_path), name=f"job-{job_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info(f"Job enqueued: job_id={job_id}, in_flight={len(self._tasks)}")
        return job_id

    async def _run(self, job_id: str, input_path: str) -> None:
        try:
            await self._processor.process(job_id, input_path)
        except asyncio.CancelledError:
            logger.info(f"Job task cancelled: job_id={job_id}")
            raise
        except Exception as e:
            # The processor records its own failures; this only guards the scheduler
            logger.error(f"Job task crashed: job_id={job_id}, error={e}", exc_info=True)

    async def stop(self, wait_for_current: bool = False) -> None:
        """
        Stop accepting jobs and wind down in-flight tasks.

        Args:
            wait_for_current: If True, let in-flight jobs finish; otherwise cancel them.
        """
        self._running = False
        tasks = list(self._tasks)
        if not wait_for_current:
            for task in tasks:
                task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"Job queue stopped ({len(tasks)} in-flight tasks {'drained' if wait_for_current else 'cancelled'})")

    async def join(self) -> None:
        """Wait until every task submitted so far has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def in_flight(self) -> int:
        """Number of scheduled jobs whose tasks have not finished."""
        return len(self._tasks)

    @property
    def is_running(self) -> bool:
        return self._running
