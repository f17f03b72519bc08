"""
Exceptions raised by the sync run orchestration.

Not-found and already-running outcomes are returned as results, not raised.
"""

from typing import Optional


class SyncRunError(Exception):
    """Base exception for sync run failures."""
    pass


class InvalidStreamKey(SyncRunError):
    """A persisted per-stream state row has a malformed stream key."""

    def __init__(self, stream_key: str):
        self.stream_key = stream_key
        super().__init__(f"Invalid stream name {stream_key}")


class CredentialResolutionError(SyncRunError):
    """Live credentials for a service could not be materialized."""
    pass


class DispatchError(SyncRunError):
    """The sync controller rejected the read request or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class UnauthorizedError(SyncRunError):
    """Caller presented neither a valid service token nor workspace access."""

    def __init__(self, message: str, status_code: int = 401):
        self.status_code = status_code
        super().__init__(message)
