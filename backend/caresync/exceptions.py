"""
Domain exceptions for the offline store and sync engine.
"""
from typing import Optional


class CareSyncError(Exception):
    """Base class for all engine errors."""


class StorageUnavailableError(CareSyncError):
    """The local durable store cannot be opened, read or written.

    Callers must treat this like being offline with nowhere to queue:
    the operation fails directly.
    """


class UnknownCollectionError(CareSyncError, LookupError):
    """A collection name that the local schema does not define."""


class UnknownIndexError(CareSyncError, LookupError):
    """An index name that the collection does not define."""


class InvalidOperationError(CareSyncError, ValueError):
    """A pending operation envelope is malformed."""


class RemoteError(CareSyncError):
    """A remote store call did not succeed.

    Attributes:
        status_code: HTTP status returned by the remote, if any
        retryable: whether the failure looks transient
    """

    retryable = True

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RemoteTransientError(RemoteError):
    """Network failure, timeout or transient server-side error."""

    retryable = True


class RemoteRejectedError(RemoteError):
    """The remote rejected the payload (validation, constraint, conflict)."""

    retryable = False
