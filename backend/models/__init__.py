"""
Data models package.
"""

from models.job import Job, JobStatus, TERMINAL_STATUSES, ALLOWED_TRANSITIONS
from models.responses import (
    HealthResponse,
    CapacityResponse,
    BatchTranscriptionResponse,
    SyncTranscriptionResponse,
    JobStatusResponse,
    StreamMessage,
)

__all__ = [
    "Job",
    "JobStatus",
    "TERMINAL_STATUSES",
    "ALLOWED_TRANSITIONS",
    "HealthResponse",
    "CapacityResponse",
    "BatchTranscriptionResponse",
    "SyncTranscriptionResponse",
    "JobStatusResponse",
    "StreamMessage",
]
