"""Asyncio front end for PidStore."""

import asyncio
import os
import signal
from pathlib import Path

from daemonpid.models import ProcessRecord, RecordState
from daemonpid.store import PidStore


class AsyncPidStore:
    """
    Awaitable wrapper around a PidStore.

    Each operation runs the blocking store call in a worker thread via
    ``asyncio.to_thread`` and raises the same exceptions. Nothing is
    cancelled or retried on the caller's behalf; wrap calls in
    ``asyncio.wait_for`` to impose a timeout.
    """

    def __init__(self, store: PidStore | str | os.PathLike[str] = "pid", **kwargs) -> None:
        """
        Initialize the AsyncPidStore.

        Args:
            store: An existing PidStore, or a path to build one from.
            **kwargs: Passed to PidStore when ``store`` is a path.
        """
        if isinstance(store, PidStore):
            if kwargs:
                raise TypeError("keyword arguments are only accepted with a path")
            self._store = store
        else:
            self._store = PidStore(store, **kwargs)

    @property
    def store(self) -> PidStore:
        """The wrapped synchronous store."""
        return self._store

    @property
    def path(self) -> Path:
        """Absolute record path."""
        return self._store.path

    async def write(self, pid: int | None = None) -> None:
        """Claim the record; see PidStore.write."""
        await asyncio.to_thread(self._store.write, pid)

    async def running(self, reap: bool | None = None) -> bool:
        """Return True if the record names a live process."""
        return await asyncio.to_thread(self._store.running, reap)

    async def kill(self, sig: str | int | signal.Signals = "TERM") -> None:
        """Send a signal to the recorded process."""
        await asyncio.to_thread(self._store.kill, sig)

    async def delete(self) -> None:
        """Remove the record."""
        await asyncio.to_thread(self._store.delete)

    async def read(self) -> ProcessRecord | None:
        """Read the record without probing the process."""
        return await asyncio.to_thread(self._store.read)

    async def state(self) -> RecordState:
        """Classify the path as ABSENT, OWNED or STALE."""
        return await asyncio.to_thread(self._store.state)

    async def release(self, pid: int | None = None) -> bool:
        """Delete the record only if it still names the claimant."""
        return await asyncio.to_thread(self._store.release, pid)

    async def uptime(self) -> float:
        """Seconds since the recorded process started."""
        return await asyncio.to_thread(self._store.uptime)
