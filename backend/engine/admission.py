"""
Admission control: capacity arithmetic over ledger counts.
"""

import logging
from dataclasses import asdict, dataclass

from engine.job_ledger import JobLedger
from models.job import JobStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CapacitySnapshot:
    """Point-in-time view of service load."""
    active_jobs: int
    queued_jobs: int
    max_workers: int
    max_queue_size: int

    @property
    def available_capacity(self) -> int:
        # Not clamped: negative when limits shrink below in-flight jobs
        return self.max_queue_size - (self.active_jobs + self.queued_jobs)

    @property
    def at_capacity(self) -> bool:
        return (self.active_jobs + self.queued_jobs) >= self.max_queue_size

    def to_dict(self) -> dict:
        data = asdict(self)
        data["available_capacity"] = self.available_capacity
        data["at_capacity"] = self.at_capacity
        return data


class AdmissionController:
    """
    Answers "can a new job be accepted" and "what is current capacity".

    Limits are plain attributes so they can be changed at runtime.
    """

    def __init__(self, ledger: JobLedger, max_workers: int, max_queue_size: int):
        self._ledger = ledger
        self.max_workers = max_workers
        self.max_queue_size = max_queue_size

    def snapshot(self) -> CapacitySnapshot:
        snapshot = CapacitySnapshot(
            active_jobs=self._ledger.count_by_status(JobStatus.PROCESSING),
            queued_jobs=self._ledger.count_by_status(JobStatus.PENDING),
            max_workers=self.max_workers,
            max_queue_size=self.max_queue_size,
        )
        logger.debug(
            f"Capacity check - active={snapshot.active_jobs}, queued={snapshot.queued_jobs}, "
            f"max={snapshot.max_queue_size}, at_capacity={snapshot.at_capacity}"
        )
        return snapshot

    @property
    def active_jobs(self) -> int:
        return self._ledger.count_by_status(JobStatus.PROCESSING)

    @property
    def queued_jobs(self) -> int:
        return self._ledger.count_by_status(JobStatus.PENDING)

    def is_at_capacity(self) -> bool:
        return self.snapshot().at_capacity
