"""
Audio converter.
Converts uploaded audio to the format Whisper expects (16 kHz mono PCM WAV)
using ffmpeg as an asyncio subprocess, so a cancelled job kills the process.
"""

import asyncio
import logging
import os
import uuid
from pathlib import Path
from typing import Optional, Protocol

from config import settings
from utils.exceptions import ConversionFailed

logger = logging.getLogger(__name__)


class AudioConverter(Protocol):
    """Converter contract consumed by the job processor and stream sessions."""

    async def convert(self, input_path: str) -> str:
        """Return the path of the converted file. Raises ConversionFailed."""
        ...


class FFmpegConverter:
    """
    Converts audio files with ffmpeg.

    Instances are cheap and hold no shared state; build one per job.
    """

    SAMPLE_RATE = 16000
    STDERR_TAIL = 500

    def __init__(self, output_dir: Optional[str] = None, ffmpeg_path: Optional[str] = None):
        """
        Args:
            output_dir: Directory for converted files. Defaults to settings.work_dir.
            ffmpeg_path: ffmpeg executable. Defaults to settings.ffmpeg_path.
        """
        self.output_dir = Path(output_dir or settings.work_dir)
        self.ffmpeg_path = ffmpeg_path or settings.ffmpeg_path

    def _build_command(self, input_path: str, output_path: str) -> list[str]:
        return [
            self.ffmpeg_path,
            "-y",
            "-i", input_path,
            "-vn",
            "-ar", str(self.SAMPLE_RATE),
            "-ac", "1",
            "-c:a", "pcm_s16le",
            "-af", "loudnorm",
            output_path,
        ]

    async def convert(self, input_path: str) -> str:
        """
        Convert `input_path` to 16 kHz mono WAV with loudness normalization.

        Raises:
            ConversionFailed: If the input is missing, ffmpeg is unavailable or exits non-zero.
        """
        if not os.path.exists(input_path):
            raise ConversionFailed(f"Input audio file not found: {input_path}")

        self.output_dir.mkdir(parents=True, exist_ok=True)
        output_path = str(self.output_dir / f"converted_{uuid.uuid4().hex}.wav")
        logger.info(f"Audio processing: CONVERSION_STARTED - input={input_path}, size={os.path.getsize(input_path)} bytes")

        try:
            process = await asyncio.create_subprocess_exec(
                *self._build_command(input_path, output_path),
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ConversionFailed(f"Could not start ffmpeg ({self.ffmpeg_path}): {e}") from e

        try:
            _, stderr = await process.communicate()
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
                await process.wait()
            self._discard(output_path)
            logger.warning(f"Audio processing: CONVERSION_CANCELLED - input={input_path}")
            raise

        if process.returncode != 0:
            self._discard(output_path)
            tail = stderr.decode(errors="replace").strip()[-self.STDERR_TAIL:]
            logger.error(f"Audio processing: CONVERSION_FAILED - input={input_path}, exit={process.returncode}")
            raise ConversionFailed(f"ffmpeg exited with code {process.returncode}: {tail}")

        if not os.path.exists(output_path):
            raise ConversionFailed(f"ffmpeg completed but output file not found: {output_path}")

        logger.info(
            f"Audio processing: CONVERSION_COMPLETED - output={output_path}, "
            f"size={os.path.getsize(output_path)} bytes"
        )
        return output_path

    def _discard(self, path: str) -> None:
        try:
            if os.path.exists(path):
                os.remove(path)
        except OSError as e:
            logger.warning(f"Could not remove partial conversion output {path}: {e}")
