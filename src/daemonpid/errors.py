"""Error taxonomy for daemonpid.

Every failure an operation can report is a subclass of PidStoreError, so a
caller can branch on the kind with a plain ``except`` clause.
"""

from pathlib import Path


class PidStoreError(Exception):
    """Base class for all process record errors."""

    def __init__(self, message: str, path: Path | None = None, pid: int | None = None) -> None:
        super().__init__(message)
        self.path = path
        self.pid = pid


class AlreadyRunning(PidStoreError):
    """A write was attempted against a record whose process is live."""


class NotFound(PidStoreError, LookupError):
    """The operation needs a record and none exists."""


class ProcessNotFound(PidStoreError, LookupError):
    """The record exists but its process is not alive."""


class CorruptRecord(PidStoreError, ValueError):
    """The record content is not a positive decimal integer."""


class PermissionDenied(PidStoreError, PermissionError):
    """The operating system refused the action (e.g. signaling another user's process)."""


class RecordIOError(PidStoreError, OSError):
    """Filesystem failure unrelated to the other kinds."""
