"""
Process-wide wiring of the transcription engine.

Owns the ledger, admission controller, worker pool, processor, job queue
and reaper, and hands out fresh stream sessions. Routers get it through the
get_runtime dependency.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Optional

from config import settings
from engine.admission import AdmissionController
from engine.audio_converter import FFmpegConverter
from engine.job_ledger import JobLedger
from engine.job_processor import ConverterFactory, JobProcessor, TranscriberFactory
from engine.job_queue import JobQueue
from engine.reaper import Reaper
from engine.stream_session import StreamSession
from engine.transcription_manager import TranscriptionManager, WhisperTranscriber
from engine.worker_pool import WorkerPool
from services.file_service import FileService, file_service as default_file_service

logger = logging.getLogger(__name__)


class TranscriptionRuntime:
    """Container for the long-lived engine components."""

    def __init__(
        self,
        converter_factory: ConverterFactory = FFmpegConverter,
        transcriber_factory: TranscriberFactory = WhisperTranscriber,
        max_workers: Optional[int] = None,
        max_queue_size: Optional[int] = None,
        cleanup_interval_seconds: Optional[float] = None,
        job_max_age: Optional[timedelta] = None,
        stream_min_chunk_size: Optional[int] = None,
        stream_max_buffer_size: Optional[int] = None,
        files: Optional[FileService] = None,
    ):
        max_workers = max_workers or settings.max_concurrent_workers
        max_queue_size = max_queue_size or settings.max_queue_size

        self.converter_factory = converter_factory
        self.transcriber_factory = transcriber_factory
        self.files = files or default_file_service
        self.stream_min_chunk_size = stream_min_chunk_size or settings.stream_min_chunk_size
        self.stream_max_buffer_size = stream_max_buffer_size or settings.stream_max_buffer_size

        self.ledger = JobLedger()
        self.admission = AdmissionController(self.ledger, max_workers, max_queue_size)
        self.pool = WorkerPool(max_workers)
        self.processor = JobProcessor(
            self.ledger, self.pool, converter_factory, transcriber_factory, files=self.files
        )
        self.queue = JobQueue(self.ledger, self.admission, self.processor)
        self.reaper = Reaper(
            self.ledger,
            interval_seconds=cleanup_interval_seconds or settings.cleanup_interval_seconds,
            max_age=job_max_age if job_max_age is not None else timedelta(hours=settings.job_cleanup_max_age_hours),
        )
        self._preload_task: Optional[asyncio.Task] = None

    def new_stream_session(self) -> StreamSession:
        return StreamSession(
            self.pool,
            self.converter_factory,
            self.transcriber_factory,
            min_trigger=self.stream_min_chunk_size,
            max_size=self.stream_max_buffer_size,
            files=self.files,
        )

    def engine_status(self) -> tuple[bool, str]:
        """(is_loaded, model_identifier) of the transcription engine."""
        engine = self.transcriber_factory()
        return engine.is_loaded, engine.model_identifier

    async def start(self, preload_model: bool = False) -> None:
        self.reaper.start()
        if preload_model:
            self._preload_task = asyncio.create_task(self._preload(), name="model-preload")

    async def _preload(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, TranscriptionManager.get_instance().preload_model)
        except Exception as e:
            logger.warning(f"Failed to preload model on startup - model will be loaded on first use: {e}")

    async def shutdown(self) -> None:
        await self.queue.stop(wait_for_current=False)
        await self.reaper.stop()
        if self._preload_task is not None and not self._preload_task.done():
            # The executor thread keeps loading; we just stop waiting for it
            self._preload_task.cancel()
        logger.info("Transcription runtime shut down")


_runtime: Optional[TranscriptionRuntime] = None


def get_runtime() -> TranscriptionRuntime:
    """Get or create the process runtime. Used as a FastAPI dependency."""
    global _runtime
    if _runtime is None:
        _runtime = TranscriptionRuntime()
    return _runtime
