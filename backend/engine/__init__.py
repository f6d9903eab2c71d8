"""
Engine package for transcription processing.
Contains the job ledger, admission control, worker pool, job processor,
reaper and streaming sessions.
"""

from engine.job_ledger import JobLedger
from engine.admission import AdmissionController, CapacitySnapshot
from engine.worker_pool import WorkerPool
from engine.job_processor import JobProcessor
from engine.job_queue import JobQueue
from engine.reaper import Reaper
from engine.stream_session import StreamSession, SessionState
from engine.runtime import TranscriptionRuntime, get_runtime

__all__ = [
    "JobLedger",
    "AdmissionController",
    "CapacitySnapshot",
    "WorkerPool",
    "JobProcessor",
    "JobQueue",
    "Reaper",
    "StreamSession",
    "SessionState",
    "TranscriptionRuntime",
    "get_runtime",
]
