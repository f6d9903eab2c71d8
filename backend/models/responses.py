"""
API response and streaming message schemas.
"""

import time
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict


class HealthResponse(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    status: str
    model_loaded: bool
    model_size: str


class CapacityResponse(BaseModel):
    active_jobs: int
    queued_jobs: int
    max_workers: int
    max_queue_size: int
    available_capacity: int
    at_capacity: bool


class BatchTranscriptionResponse(BaseModel):
    job_id: str
    status: str


class SyncTranscriptionResponse(BaseModel):
    transcription: str
    status: str


class JobStatusResponse(BaseModel):
    job_id: str
    status: str
    transcription: Optional[str] = None
    error: Optional[str] = None


class StreamMessage(BaseModel):
    """Message sent over the streaming WebSocket."""
    type: Literal["partial", "final", "error"]
    text: str
    timestamp: Optional[float] = None

    @classmethod
    def partial(cls, text: str) -> "StreamMessage":
        return cls(type="partial", text=text, timestamp=time.time())

    @classmethod
    def final(cls, text: str) -> "StreamMessage":
        return cls(type="final", text=text, timestamp=time.time())

    @classmethod
    def error(cls, text: str) -> "StreamMessage":
        return cls(type="error", text=text, timestamp=time.time())
