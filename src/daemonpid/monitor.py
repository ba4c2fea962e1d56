"""Background watcher for process records."""

import logging
import threading
import time
from collections.abc import Iterable
from dataclasses import dataclass
from queue import Queue

from daemonpid.config import MIN_POLL_RATE
from daemonpid.errors import PidStoreError
from daemonpid.models import RecordState
from daemonpid.store import PidStore

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class RecordStatus:
    """Observed state of one record path."""

    path: str
    state: RecordState | None  # None when the record could not be classified
    pid: int | None = None
    uptime: float | None = None  # Seconds, only for OWNED records
    error: str | None = None


@dataclass(slots=True)
class WatchSnapshot:
    """Statuses of every watched record at one poll."""

    taken_at: float
    records: list[RecordStatus]


def inspect_store(store: PidStore) -> RecordStatus:
    """
    Observe one store without letting a failure escape.

    Corrupt records and filesystem errors are reported through the
    ``error`` field so a single bad record cannot stop a watcher.
    """
    path = str(store.path)
    try:
        record = store.read()
        if record is None:
            return RecordStatus(path=path, state=RecordState.ABSENT)
        state = store.classify(record)
    except PidStoreError as e:
        return RecordStatus(path=path, state=None, error=str(e))

    uptime = None
    if state is RecordState.OWNED:
        try:
            uptime = store.uptime()
        except PidStoreError:
            # Exited or hidden between the probe and the lookup
            uptime = None
    return RecordStatus(path=path, state=state, pid=record.pid, uptime=uptime)


class RecordMonitor:
    """
    Poll a set of stores and push WatchSnapshots to a thread-safe Queue.

    Runs in a separate daemon thread. The monitor only reads: it never
    writes, reaps or signals.
    """

    def __init__(
        self,
        stores: Iterable[PidStore],
        update_queue: Queue[WatchSnapshot],
        poll_rate: float = 2.0,
    ) -> None:
        """
        Initialize the RecordMonitor.

        Args:
            stores: Stores to observe, in display order.
            update_queue: Thread-safe queue to push updates to.
            poll_rate: How often to poll (in seconds). Default 2.0s.
        """
        self._stores = list(stores)
        self._queue = update_queue
        self._poll_rate = max(MIN_POLL_RATE, poll_rate)
        self._stop_event = threading.Event()
        self._wake_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def stores(self) -> list[PidStore]:
        return list(self._stores)

    @property
    def poll_rate(self) -> float:
        """Get the current poll rate."""
        return self._poll_rate

    @poll_rate.setter
    def poll_rate(self, value: float) -> None:
        """Set the poll rate."""
        self._poll_rate = max(MIN_POLL_RATE, value)

    @property
    def is_running(self) -> bool:
        """Check if the monitor thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the monitoring thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="RecordMonitor",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the monitoring thread.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        self._wake_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def poll_now(self) -> None:
        """Cut the current wait short and poll immediately."""
        self._wake_event.set()

    def collect(self) -> WatchSnapshot:
        """Collect a snapshot of every watched record."""
        return WatchSnapshot(
            taken_at=time.time(),
            records=[inspect_store(store) for store in self._stores],
        )

    def _poll_loop(self) -> None:
        """Main polling loop running in the background thread."""
        while not self._stop_event.is_set():
            try:
                self._queue.put(self.collect())
            except Exception:
                logger.exception("Record poll failed")

            # Wait for poll_rate seconds, a stop, or a poll_now() request
            self._wake_event.wait(timeout=self._poll_rate)
            self._wake_event.clear()
