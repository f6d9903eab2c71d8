"""
In-memory job ledger.

Single source of truth for job existence and state. Records are immutable
Job snapshots; every mutation replaces the whole record under one lock, so
two concurrent updates to the same id can never interleave their fields.
"""

import logging
import threading
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from models.job import ALLOWED_TRANSITIONS, Job, JobStatus, TERMINAL_STATUSES

logger = logging.getLogger(__name__)


class LedgerInvariantError(RuntimeError):
    """Internal invariant of the ledger was violated. Not retried."""


class InvalidTransitionError(LedgerInvariantError):
    """Status change that is not an edge of Pending -> Processing -> terminal."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobLedger:
    """
    Thread-safe store of job records keyed by opaque id.

    Safe for any number of concurrent callers, including executor threads.
    """

    def __init__(
        self,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()
        self._id_factory = id_factory
        self._clock = clock

    def create(self) -> str:
        """
        Insert a new Pending job and return its id.

        Raises:
            LedgerInvariantError: If the generated id is already present.
        """
        job_id = self._id_factory()
        job = Job(id=job_id, status=JobStatus.PENDING, created_at=self._clock())

        with self._lock:
            if job_id in self._jobs:
                logger.error(f"Failed to create job with ID: {job_id} - ID collision")
                raise LedgerInvariantError(f"Failed to create job with ID: {job_id}")
            self._jobs[job_id] = job

        logger.info(f"Job lifecycle: CREATED - job_id={job_id}, created_at={job.created_at.isoformat()}")
        return job_id

    def get(self, job_id: str) -> Optional[Job]:
        """Return the current snapshot of a job, or None if unknown."""
        with self._lock:
            return self._jobs.get(job_id)

    def update_status(
        self,
        job_id: str,
        status: JobStatus,
        transcript: Optional[str] = None,
        error: Optional[str] = None,
    ) -> Optional[Job]:
        """
        Apply one atomic state transition.

        Completed requires a non-empty transcript, Failed requires a non-empty
        error. Terminal transitions stamp completed_at. An unknown id is a
        no-op with a warning and returns None.

        Raises:
            InvalidTransitionError: If the edge is not allowed from the current status.
            ValueError: If the payload does not match the target status.
        """
        if status == JobStatus.COMPLETED and not transcript:
            raise ValueError("Completed status requires a non-empty transcript")
        if status == JobStatus.FAILED and not error:
            raise ValueError("Failed status requires a non-empty error")
        if status not in TERMINAL_STATUSES and (transcript is not None or error is not None):
            raise ValueError(f"{status.value} status cannot carry a transcript or error")
        if status == JobStatus.COMPLETED and error is not None:
            raise ValueError("Completed status cannot carry an error")
        if status == JobStatus.FAILED and transcript is not None:
            raise ValueError("Failed status cannot carry a transcript")

        with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                logger.warning(f"Attempted to update non-existent job: {job_id}")
                return None

            if status not in ALLOWED_TRANSITIONS[current.status]:
                raise InvalidTransitionError(
                    f"Job {job_id}: {current.status.value} -> {status.value} is not a valid transition"
                )

            completed_at = self._clock() if status in TERMINAL_STATUSES else None
            updated = replace(
                current,
                status=status,
                transcript=transcript,
                error=error,
                completed_at=completed_at,
            )
            self._jobs[job_id] = updated

        if completed_at is not None:
            duration_ms = (completed_at - updated.created_at).total_seconds() * 1000
            if status == JobStatus.COMPLETED:
                logger.info(
                    f"Job lifecycle: COMPLETED - job_id={job_id}, duration={duration_ms:.0f}ms, "
                    f"transcript_length={len(transcript)}"
                )
            else:
                logger.error(f"Job lifecycle: FAILED - job_id={job_id}, duration={duration_ms:.0f}ms, error={error}")
        else:
            logger.info(
                f"Job lifecycle: STATUS_CHANGE - job_id={job_id}, "
                f"{current.status.value} -> {status.value}"
            )
        return updated

    def count_by_status(self, status: JobStatus) -> int:
        with self._lock:
            return sum(1 for job in self._jobs.values() if job.status == status)

    def terminal_older_than(self, cutoff: datetime) -> List[str]:
        """Snapshot the ids of terminal jobs completed before the cutoff."""
        with self._lock:
            return [
                job.id
                for job in self._jobs.values()
                if job.status in TERMINAL_STATUSES
                and job.completed_at is not None
                and job.completed_at < cutoff
            ]

    def remove(self, job_id: str) -> Optional[Job]:
        """
        Delete a terminal job. Non-terminal jobs are never removed.

        Returns the removed record, or None if it was absent or still running.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status not in TERMINAL_STATUSES:
                return None
            del self._jobs[job_id]
            return job

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def __contains__(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._jobs
