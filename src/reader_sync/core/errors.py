"""Error kinds raised by the reader API layer and the sync core."""

from typing import Optional


class ReaderSyncError(Exception):
    """Base class for reader-sync errors."""


class AuthRejected(ReaderSyncError):
    """The login endpoint rejected the credentials."""


class AuthExpired(ReaderSyncError):
    """A previously valid token was rejected by an authenticated endpoint."""


class NetworkFailure(ReaderSyncError):
    """Transport-level failure or an unexpected response from the service."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class EditRejected(ReaderSyncError):
    """The service refused a subscription or tag edit."""


class MigrationInProgress(ReaderSyncError):
    """The source is being decommissioned; nothing may be sent anymore."""
