"""
Domain error taxonomy.

Read-side aggregation absorbs ``NormalizationError`` (bad rows are skipped) and
``ExternalModelError`` (insights fall back). Write-side and user-triggered AI
actions let them reach the caller, where ``fintrack.main`` maps them to HTTP
responses.
"""
from typing import Optional


class FinTrackError(Exception):
    """Base class for errors raised by the pipeline."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(FinTrackError):
    """Malformed input to a create/update operation."""

    def __init__(self, field: Optional[str], message: str):
        super().__init__(message)
        self.field = field


class NormalizationError(FinTrackError):
    """A persisted record violates the canonical record invariants."""

    def __init__(self, field: str, message: Optional[str] = None):
        super().__init__(message or f"Invalid value for field '{field}'")
        self.field = field


class ExternalModelError(FinTrackError):
    """The AI model is unreachable or returned unusable content."""


class EnrichmentError(ExternalModelError):
    """A transaction could not be enriched."""


class NotFoundError(FinTrackError):
    """A referenced expense or transaction does not exist."""
