"""Exception types raised by the content pipeline."""
from __future__ import annotations


class ContentSyncError(RuntimeError):
    """Base class for pipeline failures that should stop a run."""


class NotFoundError(ContentSyncError):
    """Raised when a required file or document does not exist."""


class BackupError(ContentSyncError):
    """Raised when a snapshot backup cannot be written."""


class ValidationError(ContentSyncError):
    """Raised when a request is missing required fields."""


class UpstreamError(ContentSyncError):
    """Raised when the document store or a third-party API fails."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ConfigurationError(ContentSyncError):
    """Raised when a required configuration value is missing."""
