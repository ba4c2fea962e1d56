"""Operating-system process control behind a small capability interface."""

import logging
import signal
from typing import Protocol

import psutil

from daemonpid.models import MAX_PID

logger = logging.getLogger(__name__)


class ProcessControl(Protocol):
    """Liveness and signal primitives a store needs from the platform."""

    def probe(self, pid: int) -> bool:
        """Return True if ``pid`` denotes a live process."""
        ...

    def signal(self, pid: int, sig: signal.Signals) -> None:
        """
        Deliver ``sig`` to ``pid``.

        Raises ProcessLookupError if the process does not exist and
        PermissionError if delivery is not allowed.
        """
        ...

    def create_time(self, pid: int) -> float:
        """Return the process start time as a UNIX timestamp; ProcessLookupError if gone."""
        ...


def resolve_signal(sig: str | int | signal.Signals) -> signal.Signals:
    """
    Normalize a signal identifier.

    Accepts ``"TERM"``, ``"SIGTERM"``, ``"term"``, an int or a
    ``signal.Signals`` member. Raises ValueError for unknown signals.
    """
    if isinstance(sig, signal.Signals):
        return sig
    if isinstance(sig, int) and not isinstance(sig, bool):
        try:
            return signal.Signals(sig)
        except ValueError:
            raise ValueError(f"unknown signal number: {sig}") from None
    if isinstance(sig, str):
        name = sig.strip().upper()
        if not name.startswith("SIG"):
            name = f"SIG{name}"
        try:
            return signal.Signals[name]
        except KeyError:
            raise ValueError(f"unknown signal name: {sig!r}") from None
    raise ValueError(f"unsupported signal identifier: {sig!r}")


class PsutilProcessControl:
    """
    ProcessControl implemented with psutil.

    Zombies count as dead: the process has exited and only awaits reaping by
    its parent, so a record naming it is stale. AccessDenied while probing
    still proves the process exists.
    """

    def probe(self, pid: int) -> bool:
        if not 0 < pid <= MAX_PID or not psutil.pid_exists(pid):
            return False
        try:
            return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
        except (psutil.NoSuchProcess, psutil.ZombieProcess):
            return False
        except psutil.AccessDenied:
            return True

    def signal(self, pid: int, sig: signal.Signals) -> None:
        if not 0 < pid <= MAX_PID:
            raise ProcessLookupError(f"no such process: {pid}")
        try:
            proc = psutil.Process(pid)
            if proc.status() == psutil.STATUS_ZOMBIE:
                raise ProcessLookupError(f"process {pid} is a zombie")
            proc.send_signal(sig)
        except (psutil.NoSuchProcess, psutil.ZombieProcess) as e:
            raise ProcessLookupError(f"no such process: {pid}") from e
        except psutil.AccessDenied as e:
            raise PermissionError(f"not permitted to signal process {pid}") from e
        logger.debug("Sent %s to pid %d", sig.name, pid)

    def create_time(self, pid: int) -> float:
        if not 0 < pid <= MAX_PID:
            raise ProcessLookupError(f"no such process: {pid}")
        try:
            return psutil.Process(pid).create_time()
        except (psutil.NoSuchProcess, psutil.ZombieProcess) as e:
            raise ProcessLookupError(f"no such process: {pid}") from e
        except psutil.AccessDenied as e:
            raise PermissionError(f"not permitted to inspect process {pid}") from e
