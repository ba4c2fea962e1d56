"""Data models for daemonpid."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


# Largest value a pid_t can hold on the platforms daemonpid supports.
MAX_PID = 2**31 - 1


class RecordState(Enum):
    """States of a record path."""

    ABSENT = "absent"
    OWNED = "owned"
    STALE = "stale"


@dataclass(slots=True, frozen=True)
class ProcessRecord:
    """Immutable view of a record read from disk."""

    path: Path
    pid: int
    modified_at: float  # st_mtime of the record file, 0.0 when unknown


def format_record(pid: int) -> str:
    """Render a pid as record content."""
    if isinstance(pid, bool) or not isinstance(pid, int) or not 0 < pid <= MAX_PID:
        raise ValueError(f"pid must be a positive integer up to {MAX_PID}, got {pid!r}")
    return f"{pid}\n"


def parse_record(content: str) -> int:
    """
    Parse record content into a pid.

    Accepts a decimal positive integer optionally followed by a single
    newline, no larger than MAX_PID. Raises ValueError for anything else.
    """
    text = content[:-1] if content.endswith("\n") else content
    if not text or not text.isascii() or not text.isdigit():
        raise ValueError(f"not a process identifier: {content!r}")
    pid = int(text)
    if not 0 < pid <= MAX_PID:
        raise ValueError(f"not a process identifier: {content!r}")
    return pid
