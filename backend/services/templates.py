"""Synchronizer wiring and engine-error → HTTP mapping for the template routes."""

from __future__ import annotations

from fastapi import HTTPException, status

from backend.config import settings
from backend.repos.template_repo import template_repo
from engine.kernel.errors import (
    TemplateEngineError,
    TemplateNotFound,
    TemplateNotPublished,
    ValidationFailure,
)
from engine.kernel.sync import BatchPolicy, RetryPolicy, TemplateSynchronizer
from engine.kernel.urls import ProxyRule

retry_policy = RetryPolicy(
    max_attempts=settings.SYNC_MAX_ATTEMPTS,
    base_delay=settings.SYNC_BASE_DELAY_MS / 1000,
)
batch_policy = BatchPolicy(
    batch_size=settings.SYNC_BATCH_SIZE,
    max_in_flight=settings.SYNC_MAX_IN_FLIGHT,
)
proxy_rule = ProxyRule(domains=settings.PROXY_DOMAINS, path=settings.PROXY_PATH)

# Singleton instance. Per-entity write locks live on it, so there must be one per process.
synchronizer = TemplateSynchronizer(template_repo, retry=retry_policy, batch=batch_policy)


def get_sync() -> TemplateSynchronizer:
    """FastAPI dependency. Tests override it with a MemoryStore-backed synchronizer."""
    return synchronizer


def get_proxy_rule() -> ProxyRule:
    return proxy_rule


def http_error(e: TemplateEngineError) -> HTTPException:
    """Map an engine error to the HTTP status the API promises for its category."""
    if isinstance(e, ValidationFailure):
        code = status.HTTP_403_FORBIDDEN if e.reason == "domain_not_allowed" else status.HTTP_400_BAD_REQUEST
        return HTTPException(status_code=code, detail=e.message)
    if isinstance(e, (TemplateNotFound, TemplateNotPublished)) or e.category == "not_found":
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    if e.category == "transient":
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Storage temporarily unavailable.")
    if e.category == "asset":
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message)
