"""Exception hierarchy for the codemap storage layer."""

from typing import Optional


class StorageError(Exception):
    """Base class for storage errors."""


class BackendUnavailable(StorageError):
    """A single backend call failed or exceeded its timeout.

    Recovered locally by HybridStorage whenever another path exists.
    """

    def __init__(self, backend: str, operation: str, reason: Optional[str] = None):
        self.backend = backend
        self.operation = operation
        self.reason = reason
        message = f"{backend} {operation} failed"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class StorageUnavailable(StorageError):
    """Every write path failed, so a put could not be stored anywhere."""


class ConfigurationError(StorageError, ValueError):
    """Invalid configuration value or missing backend handle."""


class InvalidPayload(ValueError):
    """Caller supplied an empty or non-string payload or key."""
