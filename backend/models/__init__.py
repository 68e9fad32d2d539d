"""
Pydantic models for the Tamuu API.

All request/response shapes defined here. No imports from db, repos, or routes.
"""

from backend.models.template import (
    BatchUpdateRequest,
    BatchUpdateResponse,
    CloneTemplateRequest,
    CreateTemplateRequest,
    TemplateSummary,
    UpdateTemplateRequest,
    UploadResponse,
)

__all__ = [
    # Template models
    "CreateTemplateRequest",
    "UpdateTemplateRequest",
    "CloneTemplateRequest",
    "TemplateSummary",
    # Batch models
    "BatchUpdateRequest",
    "BatchUpdateResponse",
    # Asset models
    "UploadResponse",
]
