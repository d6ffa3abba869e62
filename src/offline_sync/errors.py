"""Error taxonomy for the sync pipeline.

Storage, timeout and remote errors are recoverable: the engine catches them
and degrades to offline-queued state.  Validation errors are raised to the
caller and block the action.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for every error raised by this package."""


class StorageError(SyncError):
    """A local persistence transaction failed."""


class RequestTimeoutError(SyncError, TimeoutError):
    """No reply or response arrived within the allowed bound."""


class RemoteError(SyncError):
    """Non-2xx HTTP response or a transport failure talking to the backend."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RemoteStoreError(RemoteError):
    """The background store context reported an internal failure."""


class TodoValidationError(SyncError, ValueError):
    """A todo failed validation (e.g. empty text)."""
