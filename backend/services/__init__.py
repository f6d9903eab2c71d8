"""
Services package.
"""

from services.file_service import FileService, file_service

__all__ = ["FileService", "file_service"]
