"""
Job processor.

Drives one job from Pending to a terminal state:
acquire worker slot -> Processing -> convert -> transcribe -> Completed/Failed
-> release slot -> cleanup.
"""

import asyncio
import logging
from typing import Callable, Optional

from engine.audio_converter import AudioConverter
from engine.job_ledger import JobLedger
from engine.transcription_manager import Transcriber
from engine.worker_pool import WorkerPool
from models.job import JobStatus
from services.file_service import FileService, file_service as default_file_service
from utils.exceptions import AppError, CleanupFailed
from utils.perf_logger import perf_logger

logger = logging.getLogger(__name__)

ConverterFactory = Callable[[], AudioConverter]
TranscriberFactory = Callable[[], Transcriber]

NO_SPEECH_ERROR = "No speech detected in audio"
CANCELLED_ERROR = "Job was cancelled before completion"


class JobProcessor:
    """
    Orchestrates single jobs. Long-lived; one instance serves every job.

    Converter and transcriber instances are built through the factories on
    every run and dropped when the run ends, never stored on the processor.
    All failures end up on the job record; process() only propagates
    cancellation.
    """

    def __init__(
        self,
        ledger: JobLedger,
        pool: WorkerPool,
        converter_factory: ConverterFactory,
        transcriber_factory: TranscriberFactory,
        files: Optional[FileService] = None,
    ):
        self._ledger = ledger
        self._pool = pool
        self._converter_factory = converter_factory
        self._transcriber_factory = transcriber_factory
        self._files = files or default_file_service

    async def process(self, job_id: str, input_path: str) -> None:
        """Run the pipeline for one job; cleanup of both artifacts always happens."""
        converted_path: Optional[str] = None
        logger.info(f"Job lifecycle: PROCESSING_QUEUED - job_id={job_id}, input={input_path}")

        try:
            converter = self._converter_factory()
            transcriber = self._transcriber_factory()

            # The slot is held until the terminal status is recorded, so the
            # number of Processing jobs never exceeds the pool size.
            async with self._pool.slot(owner=f"job:{job_id}"):
                self._ledger.update_status(job_id, JobStatus.PROCESSING)

                try:
                    with perf_logger.phase(f"Conversion (Job {job_id})"):
                        converted_path = await converter.convert(input_path)
                except AppError as e:
                    self._ledger.update_status(job_id, JobStatus.FAILED, error=e.message)
                    return

                try:
                    with perf_logger.phase(f"Transcription (Job {job_id})"):
                        text = await transcriber.transcribe(converted_path)
                except AppError as e:
                    self._ledger.update_status(job_id, JobStatus.FAILED, error=e.message)
                    return

                if text and text.strip():
                    self._ledger.update_status(job_id, JobStatus.COMPLETED, transcript=text.strip())
                else:
                    self._ledger.update_status(job_id, JobStatus.FAILED, error=NO_SPEECH_ERROR)

        except asyncio.CancelledError:
            logger.warning(f"Job lifecycle: PROCESSING_CANCELLED - job_id={job_id}")
            self._record_failure(job_id, CANCELLED_ERROR)
            raise
        except Exception as e:
            logger.error(f"Job lifecycle: PROCESSING_FAILED - job_id={job_id}, error={e}", exc_info=True)
            self._record_failure(job_id, f"Unexpected error: {e}")
        finally:
            self._cleanup(job_id, input_path, converted_path)

    def _record_failure(self, job_id: str, error: str) -> None:
        """Move a job to Failed along legal edges, whatever non-terminal state it is in."""
        job = self._ledger.get(job_id)
        if job is None or job.is_terminal:
            return
        if job.status == JobStatus.PENDING:
            self._ledger.update_status(job_id, JobStatus.PROCESSING)
        self._ledger.update_status(job_id, JobStatus.FAILED, error=error)

    def _cleanup(self, job_id: str, input_path: str, converted_path: Optional[str]) -> None:
        """Delete the input and converted artifacts. Failures never touch the job status."""
        for path in (input_path, converted_path):
            try:
                if self._files.delete_file(path):
                    logger.debug(f"Job lifecycle: CLEANUP_FILE_DELETED - job_id={job_id}, file={path}")
            except CleanupFailed as e:
                logger.warning(f"Job lifecycle: CLEANUP_FAILED - job_id={job_id}, file={e.path}, error={e.detail}")
        logger.debug(f"Job lifecycle: CLEANUP_COMPLETED - job_id={job_id}")
