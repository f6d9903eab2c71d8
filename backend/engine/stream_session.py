"""
Streaming transcription session.

Buffers audio bytes for one connection and transcribes them through the
shared worker pool once enough audio has arrived. Independent of the job
ledger: streaming work only competes for worker permits.
"""

import enum
import logging
import uuid
from typing import List, Optional

from engine.job_processor import ConverterFactory, TranscriberFactory
from engine.worker_pool import WorkerPool
from models.responses import StreamMessage
from services.file_service import FileService, file_service as default_file_service
from utils.exceptions import AppError, BufferOverflowError

logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    OPEN = "open"
    CLOSED = "closed"


class StreamSession:
    """
    Per-connection buffer state machine (Open -> Closed).

    - receive(chunk): append; overflow emits `error` and closes; reaching
      min_trigger flushes and emits `partial`.
    - close(): flushes any remaining bytes as `final`, then closes.
    - A failed partial flush emits `error`, drops the buffered audio and
      keeps the session open. A failed final flush emits `error` and closes.
    """

    def __init__(
        self,
        pool: WorkerPool,
        converter_factory: ConverterFactory,
        transcriber_factory: TranscriberFactory,
        min_trigger: int,
        max_size: int,
        files: Optional[FileService] = None,
        session_id: Optional[str] = None,
    ):
        if min_trigger < 1 or max_size < min_trigger:
            raise ValueError(f"Invalid stream thresholds: min_trigger={min_trigger}, max_size={max_size}")
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self.min_trigger = min_trigger
        self.max_size = max_size
        self._pool = pool
        self._converter_factory = converter_factory
        self._transcriber_factory = transcriber_factory
        self._files = files or default_file_service
        self._buffer = bytearray()
        self._state = SessionState.OPEN
        self.overflowed = False

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == SessionState.OPEN

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    async def receive(self, chunk: bytes) -> List[StreamMessage]:
        """Handle one incoming chunk and return the messages to emit."""
        if not self.is_open:
            logger.warning(f"Stream {self.session_id}: chunk of {len(chunk)} bytes ignored, session is closed")
            return []
        if not chunk:
            return []

        self._buffer.extend(chunk)
        if len(self._buffer) > self.max_size:
            error = BufferOverflowError(len(self._buffer), self.max_size)
            logger.warning(f"Stream {self.session_id}: {error.message}")
            self._buffer.clear()
            self.overflowed = True
            self._state = SessionState.CLOSED
            return [StreamMessage.error(error.message)]

        if len(self._buffer) < self.min_trigger:
            return []

        data = self._take_buffer()
        try:
            text = await self._transcribe(data, "partial")
        except AppError as e:
            logger.error(f"Stream {self.session_id}: partial transcription failed: {e.message}")
            return [StreamMessage.error(e.message)]
        except Exception as e:
            logger.error(f"Stream {self.session_id}: partial transcription crashed: {e}", exc_info=True)
            return [StreamMessage.error(f"Transcription error: {e}")]

        logger.info(f"Stream {self.session_id}: partial transcription sent ({len(text)} chars)")
        return [StreamMessage.partial(text)]

    async def close(self) -> List[StreamMessage]:
        """End of stream: final flush if bytes remain, then Closed."""
        if not self.is_open:
            return []

        if not self._buffer:
            self._state = SessionState.CLOSED
            logger.info(f"Stream {self.session_id}: closed with empty buffer")
            return []

        data = self._take_buffer()
        try:
            text = await self._transcribe(data, "final")
        except AppError as e:
            logger.error(f"Stream {self.session_id}: final transcription failed: {e.message}")
            return [StreamMessage.error(e.message)]
        except Exception as e:
            logger.error(f"Stream {self.session_id}: final transcription crashed: {e}", exc_info=True)
            return [StreamMessage.error(f"Transcription error: {e}")]
        finally:
            self._state = SessionState.CLOSED

        logger.info(f"Stream {self.session_id}: final transcription sent ({len(text)} chars)")
        return [StreamMessage.final(text)]

    def abort(self) -> None:
        """Drop buffered audio without transcribing (client went away)."""
        if self._buffer:
            logger.info(f"Stream {self.session_id}: discarding {len(self._buffer)} buffered bytes")
        self._buffer.clear()
        self._state = SessionState.CLOSED

    def _take_buffer(self) -> bytes:
        data = bytes(self._buffer)
        self._buffer.clear()
        return data

    async def _transcribe(self, data: bytes, kind: str) -> str:
        """Write, convert, then transcribe under a worker permit. Temp files are always removed."""
        raw_path: Optional[str] = None
        converted_path: Optional[str] = None
        converter = self._converter_factory()
        transcriber = self._transcriber_factory()
        try:
            raw_path = await self._files.write_bytes(data, prefix=f"stream_{self.session_id}")
            converted_path = await converter.convert(raw_path)
            async with self._pool.slot(owner=f"stream:{self.session_id}:{kind}"):
                return await transcriber.transcribe(converted_path)
        finally:
            self._files.discard(raw_path, converted_path)
