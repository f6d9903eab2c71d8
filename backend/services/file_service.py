"""
Audio upload service.
Handles upload validation, storage of input artifacts and best-effort deletion.
"""

import os
import uuid
import logging
import aiofiles
from pathlib import Path
from typing import BinaryIO, Optional

from config import settings
from utils.exceptions import CleanupFailed, FileTooLargeError, InvalidAudioFormatError

logger = logging.getLogger(__name__)


class FileService:
    """Service for handling audio uploads and temporary artifacts."""

    @property
    def upload_dir(self) -> Path:
        return Path(settings.upload_dir)

    @property
    def work_dir(self) -> Path:
        return Path(settings.work_dir)

    @property
    def max_size(self) -> int:
        return settings.max_file_size_bytes

    def validate_file(self, filename: Optional[str], file_size: int, content_type: Optional[str] = None) -> None:
        """
        Validate file extension, size and MIME type.

        Raises:
            InvalidAudioFormatError: If no file was given or its type is not allowed
            FileTooLargeError: If file too large
        """
        if not filename:
            raise InvalidAudioFormatError("No file provided or file is empty")

        ext = Path(filename).suffix.lower()
        if ext not in settings.allowed_extensions:
            raise InvalidAudioFormatError(
                f"Unsupported audio format. Supported formats: WAV, MP3, OGG, M4A. Provided: {ext or 'none'}"
            )

        if file_size > self.max_size:
            raise FileTooLargeError(file_size, self.max_size)

        # Generic binary uploads carry no useful MIME information
        if content_type and content_type.lower() != "application/octet-stream":
            if content_type.lower() not in settings.allowed_mime_types:
                raise InvalidAudioFormatError(
                    f"Unsupported MIME type: {content_type}. Supported formats: WAV, MP3, OGG, M4A"
                )

        logger.info(f"File validation successful: {filename}, size={file_size} bytes, type={content_type}")

    async def save_upload(
        self,
        file: BinaryIO,
        filename: str,
        chunk_size: int = 1024 * 1024  # 1MB chunks
    ) -> str:
        """
        Stream an uploaded file to disk under a unique name.

        Returns:
            Path of the stored input artifact.
        """
        ext = Path(filename).suffix.lower()
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        file_path = self.upload_dir / f"upload_{uuid.uuid4().hex}{ext}"

        try:
            total_size = 0
            async with aiofiles.open(file_path, 'wb') as out_file:
                while chunk := await file.read(chunk_size):
                    total_size += len(chunk)

                    # Check size during upload
                    if total_size > self.max_size:
                        raise FileTooLargeError(total_size, self.max_size)

                    await out_file.write(chunk)

            if total_size == 0:
                raise InvalidAudioFormatError("No file provided or file is empty")

            logger.info(f"Saved upload: {file_path.name} ({total_size} bytes)")
            return str(file_path)

        except BaseException:
            # Never leave a partial upload behind
            self.discard(str(file_path))
            raise

    async def write_bytes(self, data: bytes, prefix: str = "stream", ext: str = ".bin") -> str:
        """Persist an in-memory audio buffer as a temporary artifact and return its path."""
        self.work_dir.mkdir(parents=True, exist_ok=True)
        file_path = self.work_dir / f"{prefix}_{uuid.uuid4().hex}{ext}"
        async with aiofiles.open(file_path, 'wb') as out_file:
            await out_file.write(data)
        return str(file_path)

    def delete_file(self, path: Optional[str]) -> bool:
        """
        Delete an artifact if it exists.

        Returns:
            True if a file was deleted.

        Raises:
            CleanupFailed: If the file exists but could not be deleted.
        """
        if not path or not os.path.exists(path):
            return False
        try:
            os.remove(path)
        except OSError as e:
            raise CleanupFailed(path, str(e)) from e
        logger.debug(f"Deleted file: {path}")
        return True

    def discard(self, *paths: Optional[str]) -> None:
        """Best-effort deletion; failures are logged and never raised."""
        for path in paths:
            try:
                self.delete_file(path)
            except CleanupFailed as e:
                logger.warning(f"{e.message}: {e.detail}")


file_service = FileService()
