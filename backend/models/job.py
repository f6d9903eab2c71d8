"""
Transcription job record.
"""

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


class JobStatus(enum.Enum):
    """Status of a transcription job."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})

# The only legal edges of the job lifecycle
ALLOWED_TRANSITIONS = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING}),
    JobStatus.PROCESSING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


@dataclass(frozen=True)
class Job:
    """
    Immutable snapshot of a job.

    The ledger replaces the whole record on every transition, so a Job handed
    out by the ledger never changes underneath its reader.
    """
    id: str
    status: JobStatus
    created_at: datetime
    transcript: Optional[str] = None
    error: Optional[str] = None
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_status_dict(self) -> dict:
        """Shape returned by the job status endpoint."""
        return {
            "job_id": self.id,
            "status": self.status.value,
            "transcription": self.transcript,
            "error": self.error,
        }
