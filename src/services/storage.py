"""
Storage bucket uploads.

Business logos, market and category images go to the uploads bucket;
KYC documents go to the kyc bucket. Every upload returns the object's
public URL, which is what gets stored on the owning row.
"""

import asyncio
import random
import string
import time
from typing import Any, Optional

import structlog

from src.core.exceptions import StorageError, ValidationFailedError
from src.monitoring.metrics import record_storage_upload

logger = structlog.get_logger(__name__)


# =============================================================================
# Constants
# =============================================================================

IMAGE_CONTENT_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
}

KYC_CONTENT_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "application/pdf": "pdf",
}

MAX_IMAGE_BYTES = 5 * 1024 * 1024


# =============================================================================
# Helpers
# =============================================================================


def timestamp_ms() -> int:
    return int(time.time() * 1000)


def extension_for(content_type: Optional[str], allowed: dict[str, str]) -> str:
    """Return the file extension for an allowed content type.

    Raises:
        ValidationFailedError: If the content type is not allowed.
    """
    if content_type not in allowed:
        raise ValidationFailedError(
            f"Unsupported file type '{content_type}'. Allowed: {', '.join(sorted(allowed))}",
            field="file",
        )
    return allowed[content_type]


def random_suffix(length: int = 6) -> str:
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=length))


def image_object_name(prefix: str, content_type: Optional[str]) -> str:
    """Name for an uploaded image, e.g. ``logo_1700000000000_a1b2c3.png``."""
    ext = extension_for(content_type, IMAGE_CONTENT_TYPES)
    return f"{prefix}_{timestamp_ms()}_{random_suffix()}.{ext}"


def object_path_from_public_url(public_url: str, bucket: str) -> Optional[str]:
    """Recover the object path from a public URL of the given bucket."""
    marker = f"/object/public/{bucket}/"
    if marker not in public_url:
        return None
    return public_url.split(marker, 1)[1].split("?", 1)[0]


def file_too_large(max_bytes: int) -> ValidationFailedError:
    return ValidationFailedError(
        f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB",
        field="file",
    )


async def read_upload(file: Any, max_bytes: int = MAX_IMAGE_BYTES) -> bytes:
    """Read an ``UploadFile`` without buffering more than ``max_bytes + 1`` bytes."""
    content = await file.read(max_bytes + 1)
    if len(content) > max_bytes:
        raise file_too_large(max_bytes)
    return content


# =============================================================================
# Storage Service
# =============================================================================


class StorageService:
    """Thin wrapper over ``supabase.storage`` returning public URLs."""

    def __init__(self, supabase: Any):
        self._supabase = supabase

    def _upload_sync(self, bucket: str, path: str, content: bytes, content_type: str) -> str:
        storage = self._supabase.storage.from_(bucket)
        try:
            storage.upload(
                path=path,
                file=content,
                file_options={"content-type": content_type, "upsert": "false"},
            )
        except Exception as e:
            record_storage_upload(bucket, "error")
            logger.error("storage_upload_failed", bucket=bucket, path=path, error=str(e))
            raise StorageError(
                f"Failed to upload file to {bucket}",
                {"bucket": bucket, "path": path},
            ) from e

        record_storage_upload(bucket, "success")
        public_url = storage.get_public_url(path)
        logger.info("storage_upload_completed", bucket=bucket, path=path, size=len(content))
        return public_url

    async def upload(
        self,
        bucket: str,
        path: str,
        content: bytes,
        content_type: str,
        max_bytes: int = MAX_IMAGE_BYTES,
    ) -> str:
        """
        Upload a file and return its public URL.

        Raises:
            ValidationFailedError: Empty or oversized file.
            StorageError: Upload rejected by the storage service.
        """
        if not content:
            raise ValidationFailedError("Uploaded file is empty", field="file")
        if len(content) > max_bytes:
            raise file_too_large(max_bytes)
        return await asyncio.to_thread(self._upload_sync, bucket, path, content, content_type)

    async def upload_image(self, bucket: str, prefix: str, content: bytes, content_type: Optional[str]) -> str:
        """Upload an image under a generated ``<prefix>_<ms>_<random>.<ext>`` name."""
        path = image_object_name(prefix, content_type)
        return await self.upload(bucket, path, content, content_type or "")

    async def remove(self, bucket: str, public_url: Optional[str]) -> bool:
        """Delete the object behind a public URL. Returns False when nothing was removed."""
        if not public_url:
            return False
        path = object_path_from_public_url(public_url, bucket)
        if path is None:
            return False
        try:
            await asyncio.to_thread(self._supabase.storage.from_(bucket).remove, [path])
        except Exception as e:
            logger.warning("storage_remove_failed", bucket=bucket, path=path, error=str(e))
            return False
        logger.info("storage_object_removed", bucket=bucket, path=path)
        return True
