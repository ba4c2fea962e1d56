"""Process record store: claim, probe, signal and clear a pid file."""

import contextlib
import logging
import os
import signal
import time
from collections.abc import Iterator
from pathlib import Path

from daemonpid.claim import AtomicClaim, FileSystemClaim
from daemonpid.config import StoreConfig
from daemonpid.errors import (
    AlreadyRunning,
    CorruptRecord,
    NotFound,
    PermissionDenied,
    PidStoreError,
    ProcessNotFound,
    RecordIOError,
)
from daemonpid.models import ProcessRecord, RecordState, format_record, parse_record
from daemonpid.paths import resolve_path
from daemonpid.platform import ProcessControl, PsutilProcessControl, resolve_signal

logger = logging.getLogger(__name__)

# Bound on create/take-over rounds when concurrent writers keep changing the record.
_CLAIM_ATTEMPTS = 3

# Slack between a record's mtime and the start time of the process it names.
_IDENTITY_TOLERANCE = 1.0

# Pause before re-reading an empty record that may be a create in progress.
_EMPTY_SETTLE = 0.05


class PidStore:
    """
    A process record bound to one path.

    Cross-process exclusion rests entirely on the claim's exclusive create:
    ``write`` first tries to create the record and only falls back to
    probing (and taking over a stale record) when the create loses. Every other
    answer is a snapshot that may be outdated by the time the caller acts.

    The store keeps no mutable state, so one instance may be shared between
    threads.
    """

    def __init__(
        self,
        path: str | os.PathLike[str] = "pid",
        pid: int | None = None,
        *,
        claim: AtomicClaim | None = None,
        control: ProcessControl | None = None,
        reap_stale: bool = False,
        verify_identity: bool = False,
    ) -> None:
        """
        Initialize the PidStore.

        Args:
            path: Record location, relative paths resolve against the cwd.
            pid: Identifier this store claims with; defaults to ``os.getpid()``.
            claim: Atomic filesystem primitives. Default: FileSystemClaim.
            control: Liveness/signal primitives. Default: PsutilProcessControl.
            reap_stale: Let ``running()`` delete stale records by default.
            verify_identity: Treat a live pid that started after the record
                was written as a recycled identifier (stale).

        Raises:
            RecordIOError: if the record's directory cannot be created.
        """
        self._path = resolve_path(path)
        self._pid = pid
        self._claim = claim if claim is not None else FileSystemClaim()
        self._control = control if control is not None else PsutilProcessControl()
        self._reap_stale = reap_stale
        self._verify_identity = verify_identity

    @classmethod
    def from_config(cls, config: StoreConfig, **kwargs) -> "PidStore":
        """Build a store from a StoreConfig."""
        return cls(
            config.path,
            reap_stale=config.reap_stale,
            verify_identity=config.verify_identity,
            **kwargs,
        )

    @property
    def path(self) -> Path:
        """Absolute record path."""
        return self._path

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self._path)!r})"

    def read(self) -> ProcessRecord | None:
        """
        Read the record without probing the process.

        Returns None when no record exists.

        Raises:
            CorruptRecord: if the content is not a process identifier.
            RecordIOError: on filesystem failure.
        """
        data = self._read_raw()
        if data is None:
            return None
        return self._parse(*data)

    def write(self, pid: int | None = None) -> None:
        """
        Claim the record for ``pid`` (default: the store's pid, else this process).

        Succeeds when the path was free, when it already names ``pid``, or
        when it names a dead process. A stale or corrupt record is taken
        over only if it is still the record that was probed, and the path
        is then claimed again with an exclusive create, so racing writers
        are always ordered by that create.

        Raises:
            AlreadyRunning: if the record names a different live process.
            RecordIOError: on filesystem failure.
        """
        pid = self._claimant(pid)
        content = format_record(pid)

        for _ in range(_CLAIM_ATTEMPTS):
            with self._io_errors("create"):
                created = self._claim.create_exclusive(self._path, content)
            if created:
                logger.info("Claimed %s for pid %d", self._path, pid)
                return

            data = self._read_raw()
            if data is not None and not data[0]:
                # O_EXCL creates are visible before their pid is written
                time.sleep(_EMPTY_SETTLE)
                data = self._read_raw()
            if data is None:
                logger.debug("Record %s vanished before it could be probed", self._path)
                continue

            seen = data[0]
            try:
                existing = self._parse(*data)
            except CorruptRecord:
                logger.warning("Taking over corrupt record %s for pid %d", self._path, pid)
            else:
                if existing.pid == pid:
                    logger.debug("Record %s already names pid %d", self._path, pid)
                    return
                if self._is_live(existing):
                    raise AlreadyRunning(
                        f"{self._path} is held by running process {existing.pid}",
                        path=self._path,
                        pid=existing.pid,
                    )
                logger.info("Taking over stale record %s (pid %d) for pid %d", self._path, existing.pid, pid)

            with self._io_errors("take over"):
                taken = self._claim.take_over(self._path, seen)
            if not taken:
                logger.debug("Record %s changed before it could be taken over", self._path)

        raise RecordIOError(
            f"could not claim {self._path}: record kept changing under concurrent writers",
            path=self._path,
            pid=pid,
        )

    def running(self, reap: bool | None = None) -> bool:
        """
        Return True if the record names a live process.

        A missing record is not an error. A stale record is left in place
        unless ``reap`` is True (or the store was built with ``reap_stale``).

        Raises:
            CorruptRecord: if the record content is unparsable.
            RecordIOError: on filesystem failure.
        """
        record = self.read()
        if record is None:
            return False
        if self._is_live(record):
            return True

        logger.debug("Record %s is stale (pid %d)", self._path, record.pid)
        if self._reap_stale if reap is None else reap:
            self._reap(record)
        return False

    def state(self) -> RecordState:
        """Classify the path as ABSENT, OWNED or STALE."""
        return self.classify(self.read())

    def classify(self, record: ProcessRecord | None) -> RecordState:
        """Classify an already read record."""
        if record is None:
            return RecordState.ABSENT
        return RecordState.OWNED if self._is_live(record) else RecordState.STALE

    def kill(self, sig: str | int | signal.Signals = "TERM") -> None:
        """
        Send ``sig`` to the recorded process.

        Fire and forget: does not wait for exit and does not touch the record.

        Raises:
            ValueError: if ``sig`` is not a known signal.
            NotFound: if there is no record.
            ProcessNotFound: if the recorded process is not alive.
            PermissionDenied: if the OS refuses delivery.
            CorruptRecord: if the record content is unparsable.
            RecordIOError: on filesystem failure.
        """
        signum = resolve_signal(sig)
        record = self._require_record()
        if self._verify_identity and not self._is_live(record):
            raise ProcessNotFound(
                f"process {record.pid} from {self._path} is not running",
                path=self._path,
                pid=record.pid,
            )

        try:
            self._control.signal(record.pid, signum)
        except ProcessLookupError as e:
            raise ProcessNotFound(
                f"process {record.pid} from {self._path} is not running", path=self._path, pid=record.pid
            ) from e
        except PermissionError as e:
            raise PermissionDenied(
                f"not permitted to signal process {record.pid}", path=self._path, pid=record.pid
            ) from e
        except OSError as e:
            raise RecordIOError(
                f"failed to signal process {record.pid}: {e}", path=self._path, pid=record.pid
            ) from e
        logger.info("Sent %s to pid %d (%s)", signum.name, record.pid, self._path)

    def delete(self) -> None:
        """
        Remove the record. Removing an absent record succeeds.

        Raises:
            RecordIOError: if the filesystem refuses the removal.
        """
        with self._io_errors("delete"):
            removed = self._claim.remove(self._path)
        if removed:
            logger.info("Deleted record %s", self._path)

    def release(self, pid: int | None = None) -> bool:
        """
        Delete the record only if it still names ``pid`` (default: claimant).

        Meant for graceful shutdown: a successor's record is never removed.
        Returns True if a record was removed.
        """
        pid = self._claimant(pid)
        record, _ = self._peek()
        if record is None or record.pid != pid:
            return False
        with self._io_errors("delete"):
            return self._claim.remove(self._path)

    def uptime(self) -> float:
        """
        Seconds since the recorded process started.

        Raises:
            NotFound: if there is no record.
            ProcessNotFound: if the recorded process is not alive.
            PermissionDenied: if the OS hides the process start time.
        """
        record = self._require_record()
        if not self._is_live(record):
            raise ProcessNotFound(
                f"process {record.pid} from {self._path} is not running", path=self._path, pid=record.pid
            )
        try:
            started = self._control.create_time(record.pid)
        except ProcessLookupError as e:
            raise ProcessNotFound(
                f"process {record.pid} exited", path=self._path, pid=record.pid
            ) from e
        except PermissionError as e:
            raise PermissionDenied(
                f"not permitted to inspect process {record.pid}", path=self._path, pid=record.pid
            ) from e
        return max(0.0, time.time() - started)

    def _claimant(self, pid: int | None) -> int:
        if pid is not None:
            return pid
        return self._pid if self._pid is not None else os.getpid()

    def _require_record(self) -> ProcessRecord:
        record = self.read()
        if record is None:
            raise NotFound(f"no record at {self._path}", path=self._path)
        return record

    def _peek(self) -> tuple[ProcessRecord | None, bool]:
        """Read the record, reporting corruption as a flag instead of raising."""
        try:
            return self.read(), False
        except CorruptRecord:
            return None, True

    def _is_live(self, record: ProcessRecord) -> bool:
        if not self._control.probe(record.pid):
            return False
        if not self._verify_identity or not record.modified_at:
            return True

        try:
            started = self._control.create_time(record.pid)
        except ProcessLookupError:
            return False
        except PermissionError:
            # Start time hidden; the pid is live and cannot be disproven.
            return True
        if started > record.modified_at + _IDENTITY_TOLERANCE:
            logger.warning(
                "pid %d started after %s was written; treating the identifier as recycled",
                record.pid,
                self._path,
            )
            return False
        return True

    def _read_raw(self) -> tuple[str, float] | None:
        with self._io_errors("read"):
            return self._claim.read(self._path)

    def _parse(self, content: str, mtime: float) -> ProcessRecord:
        try:
            pid = parse_record(content)
        except ValueError as e:
            raise CorruptRecord(f"corrupt record {self._path}: {e}", path=self._path) from e
        return ProcessRecord(path=self._path, pid=pid, modified_at=mtime)

    def _reap(self, stale: ProcessRecord) -> None:
        """Delete a stale record unless it changed since it was probed."""
        data = self._read_raw()
        if data is None:
            return
        try:
            current = self._parse(*data)
        except CorruptRecord:
            return
        if current.pid != stale.pid:
            return
        with self._io_errors("delete"):
            removed = self._claim.take_over(self._path, data[0])
        if removed:
            logger.info("Reaped stale record %s (pid %d)", self._path, stale.pid)

    @contextlib.contextmanager
    def _io_errors(self, action: str) -> Iterator[None]:
        """Translate filesystem OSErrors into RecordIOError."""
        try:
            yield
        except PidStoreError:
            raise
        except OSError as e:
            raise RecordIOError(
                f"failed to {action} {self._path}: {e.strerror or e}", path=self._path
            ) from e
