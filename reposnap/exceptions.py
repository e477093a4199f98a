"""Application-level exception types.

Convention:
- ``SyncError`` subclasses describe snapshot pull failures.  Only
  ``ResolutionError`` and ``TransportError`` raised while listing the tree
  escape ``SnapshotSynchronizer.pull``; everything later is recorded per file
  or per batch in the run's ``SyncResult``.
- ``InternalServerError`` is for errors whose details must never reach
  clients.  The global handler logs the full message at ERROR and returns a
  generic "Internal server error" (500) to the client.
"""

from __future__ import annotations


class InternalServerError(Exception):
    """Raised for internal errors whose details must not be exposed to clients.

    The global exception handler in ``reposnap/main.py`` catches this, logs
    the full message server-side, and returns HTTP 500 with a generic
    ``"Internal server error"`` detail.
    """


class SyncError(Exception):
    """Base class for snapshot sync failures."""


class ResolutionError(SyncError):
    """The branch or commit to pull could not be found on the remote."""


class TransportError(SyncError):
    """A call to the remote hosting API failed or returned a non-success status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ExtractionError(SyncError):
    """A blob response could not be decoded into file content."""


class PersistenceError(SyncError):
    """Writing a batch of fetched files to the file store failed."""
