"""
Tamuu Kernel — Error Taxonomy

Every failure the engine raises belongs to exactly one category:

- transient:  network/timeout failures. Retried by the synchronizer and
              surfaced only after retries are exhausted.
- validation: malformed input (bad URL, disallowed domain, content type,
              size, malformed element). Rejected immediately, never retried.
- not_found:  missing or unpublished template. Rendered as a terminal state.
- asset:      image decode/load failures. Degrade to a placeholder.
"""

from __future__ import annotations


class TemplateEngineError(Exception):
    """Base class for all engine errors. Carries a category and a readable message."""

    category: str = "internal"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"[{self.category}] {self.message}"


class TransientStoreError(TemplateEngineError):
    """Store request failed for a reason that may succeed on retry."""

    category = "transient"


class ValidationFailure(TemplateEngineError):
    """Input rejected. `reason` is a stable machine-readable code."""

    category = "validation"

    def __init__(self, reason: str, message: str) -> None:
        super().__init__(message)
        self.reason = reason


class TemplateNotFound(TemplateEngineError):
    """Template does not exist."""

    category = "not_found"

    def __init__(self, template_ref: str) -> None:
        super().__init__("Template not found or not published.")
        self.template_ref = template_ref


class TemplateNotPublished(TemplateEngineError):
    """Template exists but is still a draft."""

    category = "not_found"

    def __init__(self, template_ref: str) -> None:
        super().__init__("This template is not published yet.")
        self.template_ref = template_ref


class AssetLoadError(TemplateEngineError):
    """An image or other asset could not be loaded."""

    category = "asset"

    def __init__(self, url: str, detail: str) -> None:
        super().__init__(f"Failed to load asset {url}: {detail}")
        self.url = url


class ElementNotFound(TemplateEngineError):
    """Element id does not exist in the store."""

    category = "not_found"

    def __init__(self, element_id: str) -> None:
        super().__init__(f"Element {element_id} not found.")
        self.element_id = element_id


class LoadCancelled(TemplateEngineError):
    """A load finished after its document was closed; its results were discarded."""

    category = "cancelled"
