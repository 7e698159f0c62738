"""
Expense Tracker Backend — Receipt File Storage Service
=======================================================

What:  Validates and stores uploaded receipt images.
How:   Cheapest checks first: count, extension, size, then magic-byte MIME
       detection; accepted files are written asynchronously to a
       date-organised directory under a UUID filename.
Who:   Called by the upload routes and the scan-receipt AI route.

Failure mapping:
    too many files          → UploadLimitError (400 "Too many files")
    file over max_file_size → UploadLimitError (413 "File too large")
    bad extension / content → ValidationError (400)
    disk or libmagic errors → FileStorageError (500)

Layout:
    storage/receipts/2024/01/15/<uuid>.jpg
"""

import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Tuple

import aiofiles

from expense_tracker.config import settings
from expense_tracker.exceptions import FileStorageError, UploadLimitError, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/webp": ".webp",
}
ALLOWED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp"}

MAX_FILES_PER_REQUEST = 5
RECEIPTS_DIR = "receipts"


def detect_mime(content: bytes) -> str:
    """MIME type from the file's leading bytes (libmagic)."""
    import magic

    return magic.from_buffer(content, mime=True)


class FileService:
    def __init__(self, storage_root: Optional[str] = None, max_file_size: Optional[int] = None):
        self.storage_root = Path(storage_root or settings.storage_root).resolve()
        self.max_file_size = max_file_size or settings.max_file_size
        self.storage_root.mkdir(parents=True, exist_ok=True)

    def validate_count(self, count: int) -> None:
        if count == 0:
            raise ValidationError("At least one file is required", field="files")
        if count > MAX_FILES_PER_REQUEST:
            raise UploadLimitError(
                UploadLimitError.FILE_COUNT,
                details={"max_files": MAX_FILES_PER_REQUEST, "received": count},
            )

    def validate_extension(self, filename: str) -> str:
        """Returns the lower-cased extension."""
        ext = Path(filename or "").suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                message=(
                    f"File type '{ext}' is not supported. "
                    f"Allowed types: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
                ),
                field="file",
                details={"extension": ext},
            )
        return ext

    def validate_size(self, content_length: Optional[int], actual_size: int) -> None:
        """Checks the declared length before the actual byte count."""
        for size in (content_length, actual_size):
            if size and size > self.max_file_size:
                raise UploadLimitError(
                    UploadLimitError.FILE_SIZE,
                    details={"max_size": self.max_file_size, "size": size},
                )
        if actual_size == 0:
            raise ValidationError("Uploaded file is empty", field="file")

    def validate_mime_type(self, content: bytes) -> str:
        try:
            mime_type = detect_mime(content)
        except Exception as e:
            logger.error("MIME type detection failed: %s", e)
            raise FileStorageError(
                message="Could not verify file type. Please try again.",
                details={"error": str(e)},
            )

        if mime_type not in ALLOWED_MIME_TYPES:
            raise ValidationError(
                message=(
                    f"File content type '{mime_type}' is not supported. "
                    "The receipt must be a PNG, JPEG or WebP image."
                ),
                field="file",
                details={"detected_mime": mime_type},
            )
        return mime_type

    def _generate_storage_path(self, extension: str) -> Tuple[Path, str]:
        date_dir = datetime.now(timezone.utc).strftime("%Y/%m/%d")
        relative_path = f"{RECEIPTS_DIR}/{date_dir}/{uuid.uuid4()}{extension}"
        return self.storage_root / relative_path, relative_path

    async def store_file(self, content: bytes, extension: str) -> Tuple[str, str]:
        """Returns (absolute_path, relative_path)."""
        absolute_path, relative_path = self._generate_storage_path(extension)
        try:
            absolute_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(absolute_path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to store file at %s: %s", absolute_path, e)
            raise FileStorageError(
                message="Failed to save uploaded receipt. Please try again.",
                details={"os_error": str(e)},
            )

        logger.info("Receipt stored: %s (%d bytes)", relative_path, len(content))
        return str(absolute_path), relative_path

    async def cleanup_file(self, file_path: str) -> None:
        """Best-effort removal; failures are logged, never raised."""
        try:
            path = Path(file_path)
            if path.exists():
                os.remove(path)
                logger.info("Cleaned up file: %s", path.name)
        except OSError as e:
            logger.warning("Failed to clean up file %s: %s", file_path, e)

    async def validate_and_store(
        self,
        filename: str,
        content: bytes,
        content_length: Optional[int] = None,
    ) -> Tuple[str, str]:
        ext = self.validate_extension(filename)
        self.validate_size(content_length, len(content))
        self.validate_mime_type(content)
        return await self.store_file(content, ext)


file_service = FileService()
