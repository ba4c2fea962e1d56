"""Shared fixtures: an in-memory claim and a fake process control."""

import threading
import time
from pathlib import Path

import pytest


class MemoryClaim:
    """AtomicClaim kept in a dict, with hooks to pause callers mid-protocol."""

    def __init__(self) -> None:
        self.files: dict[Path, tuple[str, float]] = {}
        self.before_create = None
        self.after_read = None
        self.after_take_over = None
        self.error: OSError | None = None
        self._lock = threading.Lock()

    def create_exclusive(self, path: Path, content: str) -> bool:
        if self.before_create is not None:
            self.before_create(path)
        self._raise_if_failing()
        with self._lock:
            if path in self.files:
                return False
            self.files[path] = (content, time.time())
            return True

    def take_over(self, path: Path, expected: str) -> bool:
        self._raise_if_failing()
        with self._lock:
            current = self.files.get(path)
            taken = current is not None and current[0] == expected
            if taken:
                del self.files[path]
        if self.after_take_over is not None:
            self.after_take_over(path)
        return taken

    def read(self, path: Path) -> tuple[str, float] | None:
        self._raise_if_failing()
        with self._lock:
            data = self.files.get(path)
        if self.after_read is not None:
            self.after_read(path)
        return data

    def remove(self, path: Path) -> bool:
        self._raise_if_failing()
        with self._lock:
            return self.files.pop(path, None) is not None

    def _raise_if_failing(self) -> None:
        if self.error is not None:
            raise self.error


class FakeControl:
    """ProcessControl over a set of pids declared alive."""

    def __init__(self, alive=(), denied=()) -> None:
        self.alive: set[int] = set(alive)
        self.denied: set[int] = set(denied)
        self.started: dict[int, float] = {}
        self.sent: list[tuple[int, object]] = []

    def probe(self, pid: int) -> bool:
        return pid in self.alive

    def signal(self, pid: int, sig) -> None:
        if pid not in self.alive:
            raise ProcessLookupError(pid)
        if pid in self.denied:
            raise PermissionError(pid)
        self.sent.append((pid, sig))

    def create_time(self, pid: int) -> float:
        if pid not in self.alive:
            raise ProcessLookupError(pid)
        if pid in self.denied:
            raise PermissionError(pid)
        return self.started.get(pid, 0.0)


@pytest.fixture
def pid_path(tmp_path: Path) -> Path:
    """Record path inside a per-test directory."""
    return tmp_path / "pid"


@pytest.fixture
def memory_claim() -> MemoryClaim:
    return MemoryClaim()


@pytest.fixture
def control() -> FakeControl:
    return FakeControl()
