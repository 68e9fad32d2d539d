"""Cloudflare R2 asset storage service."""

from __future__ import annotations

import asyncio
import logging
import secrets
import string
from dataclasses import dataclass
from datetime import UTC, datetime

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from backend.config import settings
from engine.kernel.errors import TransientStoreError, ValidationFailure

logger = logging.getLogger(__name__)

# Retryable S3 error codes
_RETRYABLE_CODES = {"RequestTimeout", "ServiceUnavailable", "ThrottlingException", "Throttling", "SlowDown"}

IMAGE_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/webp", "image/gif"}
VIDEO_TYPES = {"video/mp4", "video/webm", "video/ogg"}
ALLOWED_TYPES = IMAGE_TYPES | VIDEO_TYPES

# Default extension when the filename has none
_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
    "video/mp4": "mp4",
    "video/webm": "webm",
    "video/ogg": "ogg",
}

ASSET_CACHE_CONTROL = "public, max-age=31536000, immutable"

_ALPHABET = string.ascii_lowercase + string.digits


@dataclass(frozen=True)
class UploadedAsset:
    url: str
    key: str
    filename: str
    size: int
    type: str


def max_bytes_for(content_type: str) -> int:
    return settings.MAX_VIDEO_BYTES if content_type in VIDEO_TYPES else settings.MAX_IMAGE_BYTES


def validate_upload(content_type: str, size: int) -> None:
    """
    Reject an upload before any bytes are stored.

    Raises:
        ValidationFailure: content_type_not_allowed, empty_file or file_too_large
    """
    if content_type not in ALLOWED_TYPES:
        raise ValidationFailure("content_type_not_allowed", "File type not allowed")
    if size <= 0:
        raise ValidationFailure("empty_file", "No file uploaded")
    if size > max_bytes_for(content_type):
        raise ValidationFailure("file_too_large", "File too large")


def asset_key(filename: str, content_type: str, now: datetime | None = None) -> tuple[str, str]:
    """
    Storage key for a new asset: photos/{YYYY}/{MM}/{timestamp}-{random}.{ext}

    Returns:
        (key, stored filename)
    """
    now = now or datetime.now(UTC)
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if not ext.isalnum() or len(ext) > 5:
        ext = _EXTENSIONS[content_type]
    rand = "".join(secrets.choice(_ALPHABET) for _ in range(6))
    stored = f"{int(now.timestamp() * 1000)}-{rand}.{ext}"
    return f"photos/{now.year:04d}/{now.month:02d}/{stored}", stored


class R2Service:
    """Cloudflare R2 storage service using S3-compatible API."""

    def __init__(self) -> None:
        """Initialize R2 service with credentials from settings."""
        self.session = aioboto3.Session()
        self.endpoint = settings.R2_ENDPOINT
        self.access_key = settings.R2_ACCESS_KEY
        self.secret_key = settings.R2_SECRET_KEY

    async def upload_asset(self, data: bytes, filename: str, content_type: str, max_retries: int = 1) -> UploadedAsset:
        """
        Validate and upload an image or video with retry on transient failures.

        Args:
            data: File bytes
            filename: Original filename (only its extension is kept)
            content_type: Declared MIME type
            max_retries: Number of retries on transient failures (default 1)

        Returns:
            UploadedAsset with the public URL and storage key

        Raises:
            ValidationFailure: disallowed type, empty or oversized file
            TransientStoreError: storage unavailable after retries
        """
        validate_upload(content_type, len(data))
        key, stored = asset_key(filename, content_type)

        for attempt in range(max_retries + 1):
            try:
                async with self.session.client(
                    "s3",
                    endpoint_url=self.endpoint,
                    aws_access_key_id=self.access_key,
                    aws_secret_access_key=self.secret_key,
                ) as s3:
                    await s3.put_object(
                        Bucket=settings.R2_BUCKET,
                        Key=key,
                        Body=data,
                        ContentType=content_type,
                        CacheControl=ASSET_CACHE_CONTROL,
                    )
                break
            except ClientError as e:
                error_code = e.response.get("Error", {}).get("Code", "")
                if error_code not in _RETRYABLE_CODES:
                    raise
                if attempt >= max_retries:
                    raise TransientStoreError(f"Upload failed: {error_code}") from e
                wait_time = 2**attempt
                logger.warning("r2: upload error (attempt %d), retrying in %ds: %s", attempt + 1, wait_time, e)
                await asyncio.sleep(wait_time)
            except (BotoCoreError, OSError) as e:
                # Network errors, timeouts, etc.
                if attempt >= max_retries:
                    raise TransientStoreError(f"Upload failed: {e}") from e
                wait_time = 2**attempt
                logger.warning("r2: upload error (attempt %d), retrying in %ds: %s", attempt + 1, wait_time, e)
                await asyncio.sleep(wait_time)

        logger.info("r2: uploaded %s (%d bytes, %s)", key, len(data), content_type)
        return UploadedAsset(
            url=f"{settings.R2_PUBLIC_URL.rstrip('/')}/{key}",
            key=key,
            filename=stored,
            size=len(data),
            type=content_type,
        )


# Singleton instance
r2_service = R2Service()
