"""Error taxonomy for the sync service.

- ValidationError: malformed request shape, never retried
- AuthError: no authenticated user
- StoreError / StoreUnavailable: durable store failures, retried on load
- PartialSaveFailure: every message of a save batch failed to persist
"""

from typing import Any


class SyncError(Exception):
    """Base class for all sync service errors."""

    code = "SYNC_ERROR"

    def __init__(self, message: str, details: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """Render the error as a JSON response body."""
        body: dict[str, Any] = {"success": False, "error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(SyncError):
    """Request is missing required fields or carries invalid values."""

    code = "VALIDATION_ERROR"


class AuthError(SyncError):
    """No authenticated user for the request."""

    code = "AUTH_ERROR"


class StoreError(SyncError):
    """The durable message store rejected or failed an operation."""

    code = "STORE_ERROR"


class StoreUnavailable(StoreError):
    """Transient connectivity or availability failure of the store."""

    code = "STORE_UNAVAILABLE"


class PartialSaveFailure(SyncError):
    """Every message in a save batch failed to persist.

    Attributes:
        outcomes: Per-message outcomes of the failed batch.
    """

    code = "PARTIAL_SAVE_FAILURE"

    def __init__(self, message: str, outcomes: list[Any]) -> None:
        super().__init__(message)
        self.outcomes = outcomes
