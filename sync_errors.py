"""Exceptions raised by the providers and understood by the sync core."""

from typing import Optional

# Failure kinds recorded per item
KIND_TRANSIENT = 'transient'
KIND_VALIDATION = 'validation'
KIND_NOT_FOUND = 'not_found'
KIND_AUTHORIZATION = 'authorization'
KIND_UNKNOWN = 'unknown'


class SyncError(RuntimeError):
    """Base class for provider failures."""

    kind = KIND_UNKNOWN

    def __init__(self, message: str, kind: Optional[str] = None):
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class AuthorizationError(SyncError):
    """Credentials were rejected; the rest of the cycle cannot succeed."""

    kind = KIND_AUTHORIZATION


class SinkError(SyncError):
    """A single write or read against the sink failed."""


class SourceError(SyncError):
    """The task source could not deliver a complete snapshot."""


def failure_kind(exc: Exception) -> str:
    """Return the failure kind for an exception raised during a write."""
    if isinstance(exc, SyncError):
        return exc.kind
    if isinstance(exc, (TimeoutError, ConnectionError)):
        return KIND_TRANSIENT
    return KIND_UNKNOWN
