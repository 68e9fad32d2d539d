"""
Tamuu configuration — all environment variables in one place.

Read from environment at runtime. Never hardcode secrets.
"""

from __future__ import annotations

import os

from engine.kernel import urls


def _csv(value: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


class Settings:
    """Application settings from environment variables."""

    # Database
    DATABASE_URL: str = os.environ.get("DATABASE_URL", "")
    DB_POOL_MIN_SIZE: int = int(os.environ.get("DB_POOL_MIN_SIZE", "2"))
    DB_POOL_MAX_SIZE: int = int(os.environ.get("DB_POOL_MAX_SIZE", "20"))
    DB_COMMAND_TIMEOUT: float = float(os.environ.get("DB_COMMAND_TIMEOUT", "30"))

    # R2 / S3 Storage
    R2_ENDPOINT: str = os.environ.get("R2_ENDPOINT", "")
    R2_ACCESS_KEY: str = os.environ.get("R2_ACCESS_KEY", "")
    R2_SECRET_KEY: str = os.environ.get("R2_SECRET_KEY", "")
    R2_BUCKET: str = os.environ.get("R2_BUCKET", "tamuu-assets")
    R2_PUBLIC_URL: str = os.environ.get("R2_PUBLIC_URL", "https://pub-1e0a9ae6152440268987d00a564a8da5.r2.dev")

    # Image proxy
    PROXY_DOMAINS: tuple[str, ...] = _csv(os.environ.get("PROXY_DOMAINS", ",".join(urls.RESTRICTED_DOMAINS)))
    PROXY_PATH: str = os.environ.get("PROXY_PATH", urls.PROXY_PATH)

    # Synchronizer
    SYNC_MAX_ATTEMPTS: int = int(os.environ.get("SYNC_MAX_ATTEMPTS", "3"))
    SYNC_BASE_DELAY_MS: int = int(os.environ.get("SYNC_BASE_DELAY_MS", "100"))
    SYNC_BATCH_SIZE: int = int(os.environ.get("SYNC_BATCH_SIZE", "5"))
    SYNC_MAX_IN_FLIGHT: int = int(os.environ.get("SYNC_MAX_IN_FLIGHT", "4"))

    # Uploads
    MAX_VIDEO_BYTES: int = int(os.environ.get("MAX_VIDEO_BYTES", str(50 * 1024 * 1024)))
    MAX_IMAGE_BYTES: int = int(os.environ.get("MAX_IMAGE_BYTES", str(10 * 1024 * 1024)))

    # Application
    ENVIRONMENT: str = os.environ.get("ENVIRONMENT", "development")
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")

    @property
    def PUBLIC_URL(self) -> str:
        url = os.environ.get("PUBLIC_URL")
        if url:
            return url
        return "http://localhost:8000" if self.ENVIRONMENT == "development" else "https://tamuu.id"


# Singleton instance
settings = Settings()

# Validate required settings (skip in test mode)
_testing = os.environ.get("TESTING", "").lower() == "true"

if not _testing:
    if not settings.DATABASE_URL:
        raise RuntimeError("DATABASE_URL environment variable is required")
    if not settings.R2_ENDPOINT:
        raise RuntimeError("R2_ENDPOINT environment variable is required")
    if not settings.R2_ACCESS_KEY:
        raise RuntimeError("R2_ACCESS_KEY environment variable is required")
    if not settings.R2_SECRET_KEY:
        raise RuntimeError("R2_SECRET_KEY environment variable is required")
