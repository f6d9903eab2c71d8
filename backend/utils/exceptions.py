"""
Centralized exception definitions for the backend application.

Every application error carries an explicit ErrorKind. Transport code maps
the kind to a status code through HTTP_STATUS_BY_KIND instead of dispatching
on exception subclasses.
"""

import enum
from typing import Optional


class ErrorKind(str, enum.Enum):
    """Machine-readable error codes returned to API consumers."""
    INVALID_REQUEST = "INVALID_REQUEST"
    INVALID_AUDIO_FORMAT = "INVALID_AUDIO_FORMAT"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    JOB_NOT_FOUND = "JOB_NOT_FOUND"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    CONVERSION_FAILED = "CONVERSION_FAILED"
    TRANSCRIPTION_FAILED = "TRANSCRIPTION_FAILED"
    BUFFER_OVERFLOW = "BUFFER_OVERFLOW"
    CLEANUP_FAILED = "CLEANUP_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


HTTP_STATUS_BY_KIND = {
    ErrorKind.INVALID_REQUEST: 400,
    ErrorKind.INVALID_AUDIO_FORMAT: 415,
    ErrorKind.FILE_TOO_LARGE: 413,
    ErrorKind.JOB_NOT_FOUND: 404,
    ErrorKind.CAPACITY_EXCEEDED: 503,
    ErrorKind.CONVERSION_FAILED: 500,
    ErrorKind.TRANSCRIPTION_FAILED: 500,
    ErrorKind.BUFFER_OVERFLOW: 413,
    ErrorKind.CLEANUP_FAILED: 500,
    ErrorKind.INTERNAL_ERROR: 500,
}

_missing = set(ErrorKind) - set(HTTP_STATUS_BY_KIND)
if _missing:
    raise RuntimeError(f"HTTP status missing for error kinds: {sorted(k.value for k in _missing)}")


def http_status_for(kind: ErrorKind) -> int:
    """Return the HTTP status code for an error kind."""
    return HTTP_STATUS_BY_KIND[kind]


class AppError(Exception):
    """Base class for application errors."""
    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.INTERNAL_ERROR,
        detail: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.detail = detail

    @property
    def status_code(self) -> int:
        return http_status_for(self.kind)


class CapacityExceededError(AppError):
    """Raised at admission time when active + queued jobs reach the queue limit."""
    def __init__(self, active_jobs: int, queued_jobs: int, max_queue_size: int):
        super().__init__(
            "Service is at capacity. Please try again later.",
            kind=ErrorKind.CAPACITY_EXCEEDED,
            detail=f"Active jobs: {active_jobs}, Queued jobs: {queued_jobs}, Max capacity: {max_queue_size}",
        )
        self.active_jobs = active_jobs
        self.queued_jobs = queued_jobs
        self.max_queue_size = max_queue_size


class JobNotFoundError(AppError):
    def __init__(self, job_id: str):
        super().__init__(f"Job with ID '{job_id}' was not found", kind=ErrorKind.JOB_NOT_FOUND)
        self.job_id = job_id


class InvalidAudioFormatError(AppError):
    def __init__(self, message: str = "Unsupported audio format. Supported formats: WAV, MP3, OGG, M4A"):
        super().__init__(message, kind=ErrorKind.INVALID_AUDIO_FORMAT)


class FileTooLargeError(AppError):
    def __init__(self, file_size: int, max_size: int):
        super().__init__(
            f"File size ({format_bytes(file_size)}) exceeds maximum allowed size ({format_bytes(max_size)})",
            kind=ErrorKind.FILE_TOO_LARGE,
            detail=f"File size: {file_size} bytes, Max size: {max_size} bytes",
        )
        self.file_size = file_size
        self.max_size = max_size


class ConversionFailed(AppError):
    """Raised by the audio converter. Recorded on the job, never raised past the processor."""
    def __init__(self, detail: str):
        super().__init__(f"Audio conversion failed: {detail}", kind=ErrorKind.CONVERSION_FAILED, detail=detail)


class TranscriptionFailed(AppError):
    """Raised by the transcription engine. Recorded on the job, never raised past the processor."""
    def __init__(self, detail: str):
        super().__init__(f"Transcription failed: {detail}", kind=ErrorKind.TRANSCRIPTION_FAILED, detail=detail)


class BufferOverflowError(AppError):
    """Stream buffer grew past its configured maximum. Terminal for the session."""
    def __init__(self, buffered: int, max_size: int):
        super().__init__(
            f"Audio buffer size ({buffered} bytes) exceeds maximum allowed size ({max_size} bytes)",
            kind=ErrorKind.BUFFER_OVERFLOW,
        )
        self.buffered = buffered
        self.max_size = max_size


class CleanupFailed(AppError):
    """Temporary artifact could not be deleted. Logged only."""
    def __init__(self, path: str, detail: str):
        super().__init__(f"Failed to delete artifact {path}", kind=ErrorKind.CLEANUP_FAILED, detail=detail)
        self.path = path


def format_bytes(size: int) -> str:
    """Human readable byte count (e.g. 1.5 MB)."""
    units = ["B", "KB", "MB", "GB"]
    value = float(size)
    order = 0
    while value >= 1024 and order < len(units) - 1:
        order += 1
        value /= 1024
    return f"{value:.2f}".rstrip("0").rstrip(".") + f" {units[order]}"
