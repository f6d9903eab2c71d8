"""
Singleton TranscriptionManager using faster-whisper.
Handles model loading and file transcription.
"""

import asyncio
import logging
import os
import threading
from pathlib import Path
from typing import Optional, Protocol

from config import settings
from utils.exceptions import TranscriptionFailed

logger = logging.getLogger(__name__)


class Transcriber(Protocol):
    """Transcription engine contract consumed by the job processor and stream sessions."""

    is_loaded: bool
    model_identifier: str

    async def transcribe(self, audio_path: str) -> str:
        """Return the transcribed text. Raises TranscriptionFailed."""
        ...


class TranscriptionManager:
    """
    Singleton owner of the faster-whisper model.

    Loads the model once per process (lazily, or eagerly via preload_model)
    and reuses it for all transcriptions.
    """

    _instance: Optional["TranscriptionManager"] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._model = None
            cls._instance._model_name = settings.whisper_model
            cls._instance._load_lock = threading.Lock()
        return cls._instance

    @classmethod
    def get_instance(cls) -> "TranscriptionManager":
        """Get or create the singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    @property
    def model_name(self) -> str:
        return self._model_name

    def _load_model(self) -> None:
        """Load the faster-whisper model (lazy, idempotent, thread-safe)."""
        if self._model is not None:
            return

        with self._load_lock:
            if self._model is not None:
                return

            try:
                from faster_whisper import WhisperModel
            except ImportError:
                raise RuntimeError("faster-whisper is not installed. Run: pip install faster-whisper")

            from utils.perf_logger import perf_logger

            total_cores = os.cpu_count() or 4
            num_threads = max(2, min(16, int(total_cores * 0.70)))

            with perf_logger.phase(f"Model Loading ({self._model_name})"):
                if settings.whisper_device in ("auto", "cuda"):
                    try:
                        logger.info(f"Loading {self._model_name} model on CUDA...")
                        self._model = WhisperModel(
                            self._model_name,
                            device="cuda",
                            compute_type="float16" if settings.whisper_compute_type == "auto" else settings.whisper_compute_type,
                        )
                        logger.info("Model loaded successfully on CUDA")
                        return
                    except Exception as cuda_error:
                        if settings.whisper_device == "cuda":
                            raise
                        logger.warning(f"CUDA not available ({cuda_error}), falling back to CPU")

                self._model = WhisperModel(
                    self._model_name,
                    device="cpu",
                    compute_type="int8" if settings.whisper_compute_type == "auto" else settings.whisper_compute_type,
                    cpu_threads=num_threads,
                )
                logger.info(f"Model loaded successfully on CPU with {num_threads} threads")

    def preload_model(self) -> None:
        """
        Preload the model during startup to avoid first-request delay.
        Called from the FastAPI lifespan in a background executor.
        """
        logger.info("Preloading transcription model...")
        self._load_model()
        logger.info("Model preloaded and ready")

    def transcribe_file(self, file_path: str, language: Optional[str] = None) -> str:
        """
        Transcribe an audio file and return the joined segment text.

        Blocking; run it in an executor from async code.
        """
        self._load_model()

        if not Path(file_path).exists():
            raise FileNotFoundError(f"Audio file not found: {file_path}")

        beam_size = 1 if "distil" in self._model_name else 5

        transcribe_options = {
            "beam_size": beam_size,
            "best_of": 5 if beam_size > 1 else 1,
            "vad_filter": True,
            "vad_parameters": {
                "min_silence_duration_ms": 500,
            },
        }
        language = language or settings.whisper_language
        if language:
            transcribe_options["language"] = language

        segments_generator, info = self._model.transcribe(file_path, **transcribe_options)
        text = " ".join(segment.text.strip() for segment in segments_generator if segment.text.strip())

        logger.info(f"Transcription complete: {len(text)} characters, language={info.language}")
        return text


class WhisperTranscriber:
    """
    Per-invocation transcription engine backed by the shared model.

    Cheap to construct; the job processor builds one per job so no
    long-lived component keeps a reference to it.
    """

    def __init__(self, manager: Optional[TranscriptionManager] = None):
        self._manager = manager or TranscriptionManager.get_instance()

    @property
    def is_loaded(self) -> bool:
        return self._manager.is_loaded

    @property
    def model_identifier(self) -> str:
        return self._manager.model_name

    async def transcribe(self, audio_path: str) -> str:
        """
        Transcribe in the default executor.

        Cancelling the awaiting task stops waiting for the result; the
        executor thread itself runs to completion.

        Raises:
            TranscriptionFailed: On any engine or model error.
        """
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self._manager.transcribe_file, audio_path)
        except TranscriptionFailed:
            raise
        except Exception as e:
            logger.error(f"Transcription failed for {audio_path}: {e}", exc_info=True)
            raise TranscriptionFailed(str(e)) from e
