"""daemonpid - Textual status view for process records."""

from queue import Empty, Queue

from textual.app import App, ComposeResult
from textual.containers import Container
from textual.widgets import DataTable, Footer, Static

from daemonpid.config import StoreConfig
from daemonpid.errors import PidStoreError
from daemonpid.models import RecordState
from daemonpid.monitor import RecordMonitor, RecordStatus, WatchSnapshot
from daemonpid.store import PidStore

STATE_LABELS = {
    RecordState.OWNED: "[green]running[/green]",
    RecordState.STALE: "[yellow]stale[/yellow]",
    RecordState.ABSENT: "[dim]absent[/dim]",
}


def format_uptime(seconds: float | None) -> str:
    """Format an uptime as [D days, ]HH:MM:SS."""
    if seconds is None:
        return "-"
    seconds = int(seconds)
    days, rest = divmod(seconds, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, secs = divmod(rest, 60)
    if days > 0:
        return f"{days} days, {hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def format_state(status: RecordStatus) -> str:
    if status.state is None:
        return "[red]error[/red]"
    return STATE_LABELS[status.state]


class SummaryBar(Static):
    """Header widget counting records per state."""

    DEFAULT_CSS = """
    SummaryBar {
        height: auto;
        padding: 0 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__("Waiting for first poll...", *args, **kwargs)
        self._counts: dict[str, int] = {}

    def update_counts(self, snapshot: WatchSnapshot) -> None:
        """Recount states from a watch snapshot."""
        counts = {"running": 0, "stale": 0, "absent": 0, "error": 0}
        for status in snapshot.records:
            if status.state is RecordState.OWNED:
                counts["running"] += 1
            elif status.state is RecordState.STALE:
                counts["stale"] += 1
            elif status.state is RecordState.ABSENT:
                counts["absent"] += 1
            else:
                counts["error"] += 1
        self._counts = counts
        self.update(
            f"Records: {len(snapshot.records)}  "
            f"running {counts['running']}  stale {counts['stale']}  "
            f"absent {counts['absent']}  error {counts['error']}"
        )


class RecordTable(Container):
    """Container for the record data table."""

    DEFAULT_CSS = """
    RecordTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, paths: list[str], *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._paths = list(paths)
        self._statuses: dict[str, RecordStatus] = {}

    def compose(self) -> ComposeResult:
        yield DataTable(id="record-table")

    def on_mount(self) -> None:
        """Add one row per watched path, in store order."""
        table = self.query_one("#record-table", DataTable)
        table.cursor_type = "row"

        table.add_column("State", key="state", width=10)
        table.add_column("PID", key="pid", width=8)
        table.add_column("Uptime", key="uptime", width=18)
        table.add_column("Path", key="path")

        for path in self._paths:
            table.add_row("...", "-", "-", path, key=path)

    @property
    def selected_path(self) -> str | None:
        """Path of the row under the cursor."""
        table = self.query_one("#record-table", DataTable)
        if not self._paths or table.cursor_row < 0 or table.cursor_row >= len(self._paths):
            return None
        return self._paths[table.cursor_row]

    def status_of(self, path: str) -> RecordStatus | None:
        return self._statuses.get(path)

    def update_records(self, records: list[RecordStatus]) -> None:
        """Refresh rows in place with update_cell."""
        table = self.query_one("#record-table", DataTable)
        for status in records:
            if status.path not in self._paths:
                continue
            self._statuses[status.path] = status
            table.update_cell(status.path, "state", format_state(status))
            table.update_cell(status.path, "pid", str(status.pid) if status.pid else "-")
            table.update_cell(status.path, "uptime", format_uptime(status.uptime))
            table.update_cell(status.path, "path", status.error or status.path)


class DaemonPidApp(App):
    """Status view over one or more process records."""

    TITLE = "daemonpid"
    SUB_TITLE = "Process Record Status"

    CSS = """
    Screen {
        layout: vertical;
    }

    #summary {
        dock: top;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("k", "terminate", "Send TERM"),
        ("d", "delete_stale", "Delete stale"),
        ("r", "refresh", "Refresh"),
    ]

    def __init__(self, stores: list[PidStore], poll_rate: float = 2.0) -> None:
        super().__init__()
        self._stores = {str(store.path): store for store in stores}
        self._update_queue: Queue[WatchSnapshot] = Queue()
        self._monitor = RecordMonitor(self._stores.values(), self._update_queue, poll_rate=poll_rate)

    @classmethod
    def from_config(cls, config: StoreConfig) -> "DaemonPidApp":
        """Build the app watching every path the config names."""
        stores = [
            PidStore(path, reap_stale=False, verify_identity=config.verify_identity)
            for path in config.paths
        ]
        return cls(stores, poll_rate=config.poll_rate)

    def compose(self) -> ComposeResult:
        yield SummaryBar(id="summary")
        yield RecordTable(list(self._stores))
        yield Footer()

    def on_mount(self) -> None:
        """Start the record monitor when the app is mounted."""
        self._monitor.start()
        self.set_interval(0.5, self._check_for_updates)

    def _check_for_updates(self) -> None:
        """Drain the queue and render the newest snapshot."""
        snapshot = None
        while True:
            try:
                snapshot = self._update_queue.get_nowait()
            except Empty:
                break

        if snapshot is not None:
            self._update_ui(snapshot)

    def _update_ui(self, snapshot: WatchSnapshot) -> None:
        self.query_one("#summary", SummaryBar).update_counts(snapshot)
        self.query_one(RecordTable).update_records(snapshot.records)

    def _selected_store(self) -> PidStore | None:
        path = self.query_one(RecordTable).selected_path
        return self._stores.get(path) if path else None

    def action_terminate(self) -> None:
        """Send TERM to the selected record's process."""
        store = self._selected_store()
        if store is None:
            return
        try:
            store.kill("TERM")
        except PidStoreError as e:
            self.notify(str(e), severity="error")
            return
        self.notify(f"Sent TERM to {store.path}")
        self._monitor.poll_now()

    def action_delete_stale(self) -> None:
        """Delete the selected record, only when its process is gone."""
        store = self._selected_store()
        if store is None:
            return
        try:
            if store.state() is not RecordState.STALE:
                self.notify("Only stale records can be deleted", severity="warning")
                return
            store.delete()
        except PidStoreError as e:
            self.notify(str(e), severity="error")
            return
        self.notify(f"Deleted {store.path}")
        self._monitor.poll_now()

    def action_refresh(self) -> None:
        self._monitor.poll_now()

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._monitor.stop()
        self.exit()


def main() -> None:
    """Entry point for the daemonpid status view."""
    app = DaemonPidApp.from_config(StoreConfig.from_env())
    app.run()


if __name__ == "__main__":
    main()
