import asyncio
import shutil
import uuid
from pathlib import Path
from typing import Callable, List, Optional

from config import settings
from utils.exceptions import ConversionFailed, TranscriptionFailed


class FakeConverter:
    """Copies the input into the work dir instead of running ffmpeg."""

    def __init__(self, fail: bool = False, delay: float = 0.0, calls: Optional[List[str]] = None):
        self.fail = fail
        self.delay = delay
        self.calls = calls if calls is not None else []

    async def convert(self, input_path: str) -> str:
        self.calls.append(input_path)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise ConversionFailed("ffmpeg exited with code 1: invalid data found when processing input")
        output = Path(settings.work_dir) / f"converted_{uuid.uuid4().hex}.wav"
        shutil.copyfile(input_path, output)
        return str(output)


class FakeTranscriber:
    """Returns the converted file's bytes decoded as text (or a fixed text)."""

    is_loaded = True
    model_identifier = "fake-model"

    def __init__(
        self,
        text: Optional[str] = None,
        fail: bool = False,
        delay: float = 0.0,
        on_start: Optional[Callable[[], None]] = None,
    ):
        self.text = text
        self.fail = fail
        self.delay = delay
        self.on_start = on_start

    async def transcribe(self, audio_path: str) -> str:
        if self.on_start:
            self.on_start()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise TranscriptionFailed("model crashed")
        if self.text is not None:
            return self.text
        return Path(audio_path).read_bytes().decode()

