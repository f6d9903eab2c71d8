"""
Application configuration management.
Centralizes all configuration settings for the transcription service.
"""

import os
import shutil
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings


# Model sizes accepted by faster-whisper's WhisperModel
VALID_MODEL_SIZES = frozenset({
    "tiny", "tiny.en", "base", "base.en", "small", "small.en",
    "medium", "medium.en", "large", "large-v1", "large-v2", "large-v3",
    "large-v3-turbo", "turbo", "distil-small.en", "distil-medium.en",
    "distil-large-v2", "distil-large-v3",
})


def get_app_data_dir() -> Path:
    """Directory holding uploads and intermediate audio files."""
    return Path(os.getenv("APP_DATA_DIR", Path(__file__).parent))


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Whisper Job API"
    debug: bool = False
    log_level: str = "INFO"

    # Paths
    base_dir: Path = get_app_data_dir()
    upload_dir: Path = base_dir / "uploads"
    work_dir: Path = base_dir / "work"

    ffmpeg_path: str = shutil.which("ffmpeg") or os.getenv("FFMPEG_PATH", "ffmpeg")

    # Transcription (faster-whisper)
    whisper_model: str = "medium"
    whisper_device: str = "auto"
    whisper_compute_type: str = "auto"
    whisper_language: Optional[str] = None
    preload_model: bool = True

    # Worker pool and admission
    max_concurrent_workers: int = Field(default=4, ge=1)
    max_queue_size: int = Field(default=100, ge=1)

    # Job retention
    job_cleanup_max_age_hours: float = Field(default=24, ge=0)
    cleanup_interval_seconds: float = Field(default=3600, gt=0)

    # Streaming buffer thresholds (bytes)
    stream_min_chunk_size: int = Field(default=100 * 1024, ge=1)
    stream_max_buffer_size: int = Field(default=10 * 1024 * 1024, ge=1)

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    cors_origins: list[str] = ["*"]

    # File limits
    max_file_size_mb: int = Field(default=500, ge=1)
    allowed_extensions: set[str] = {".wav", ".mp3", ".ogg", ".m4a"}
    allowed_mime_types: set[str] = {
        "audio/wav", "audio/wave", "audio/x-wav",
        "audio/mpeg", "audio/mp3",
        "audio/ogg", "audio/vorbis",
        "audio/x-m4a", "audio/m4a", "audio/mp4",
    }

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @field_validator("whisper_model")
    @classmethod
    def _check_model_size(cls, value: str) -> str:
        if value.lower() not in VALID_MODEL_SIZES:
            raise ValueError(
                f"Invalid whisper_model: '{value}'. "
                f"Valid values are: {', '.join(sorted(VALID_MODEL_SIZES))}"
            )
        return value.lower()

    @model_validator(mode="after")
    def _check_stream_limits(self) -> "Settings":
        if self.stream_max_buffer_size < self.stream_min_chunk_size:
            raise ValueError(
                f"stream_max_buffer_size ({self.stream_max_buffer_size}) must be >= "
                f"stream_min_chunk_size ({self.stream_min_chunk_size})"
            )
        return self

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024


settings = Settings()

# Ensure directories exist
settings.upload_dir.mkdir(parents=True, exist_ok=True)
settings.work_dir.mkdir(parents=True, exist_ok=True)
