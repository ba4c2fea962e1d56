"""Deterministic write races driven through the in-memory claim."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from daemonpid.errors import AlreadyRunning
from daemonpid.store import PidStore


def once_per_thread(barrier: threading.Barrier):
    """Hook that parks each thread at ``barrier`` the first time it fires."""
    seen: set[int] = set()
    lock = threading.Lock()

    def hook(path) -> None:
        me = threading.get_ident()
        with lock:
            first = me not in seen
            seen.add(me)
        if first:
            barrier.wait(timeout=5)

    return hook


def race(stores: list[PidStore]) -> dict[int, BaseException | None]:
    """Run write() on every store concurrently; map claimant pid -> outcome."""
    with ThreadPoolExecutor(max_workers=len(stores)) as pool:
        futures = {store._pid: pool.submit(store.write) for store in stores}
        return {pid: future.exception(timeout=10) for pid, future in futures.items()}


class TestWriteRaces:
    """Two writers racing for one path."""

    def test_absent_path_has_exactly_one_winner(self, pid_path, memory_claim, control):
        control.alive.update({100, 200})
        memory_claim.before_create = once_per_thread(threading.Barrier(2))
        stores = [PidStore(pid_path, pid=pid, claim=memory_claim, control=control) for pid in (100, 200)]

        outcomes = race(stores)

        winners = [pid for pid, error in outcomes.items() if error is None]
        losers = [error for error in outcomes.values() if error is not None]
        assert len(winners) == 1
        assert len(losers) == 1
        assert isinstance(losers[0], AlreadyRunning)
        assert losers[0].pid == winners[0]
        assert memory_claim.files[pid_path][0] == f"{winners[0]}\n"

    def test_delay_between_check_and_claim_cannot_double_claim(self, pid_path, memory_claim, control):
        """A writer stalled just before creating still observes the earlier claim."""
        control.alive.update({100, 200})
        stalled = threading.Event()

        def stall_first_writer(path) -> None:
            if threading.current_thread().name.endswith("_0") and not stalled.is_set():
                stalled.set()
                time.sleep(0.2)

        memory_claim.before_create = stall_first_writer
        stores = [PidStore(pid_path, pid=pid, claim=memory_claim, control=control) for pid in (100, 200)]

        outcomes = race(stores)

        assert sum(error is None for error in outcomes.values()) == 1
        assert sum(isinstance(error, AlreadyRunning) for error in outcomes.values()) == 1

    def test_stale_reclaim_race_has_exactly_one_winner(self, pid_path, memory_claim, control):
        """Both writers see the same stale record; only one of them may claim it."""
        memory_claim.files[pid_path] = ("99999\n", time.time())
        control.alive.update({100, 200})
        memory_claim.after_read = once_per_thread(threading.Barrier(2))
        stores = [PidStore(pid_path, pid=pid, claim=memory_claim, control=control) for pid in (100, 200)]

        outcomes = race(stores)

        survivor = int(memory_claim.files[pid_path][0])
        assert outcomes[survivor] is None
        loser = ({100, 200} - {survivor}).pop()
        assert isinstance(outcomes[loser], AlreadyRunning)
        assert outcomes[loser].pid == survivor

    def test_writer_parked_on_stale_record_cannot_replace_new_claim(self, pid_path, memory_claim, control):
        """A writer resuming after another finished its claim finds the new owner."""
        memory_claim.files[pid_path] = ("99999\n", time.time())
        control.alive.update({100, 200})
        parked = threading.Event()
        resume = threading.Event()

        def park_writer_b(path) -> None:
            if threading.current_thread().name == "writer-b" and not parked.is_set():
                parked.set()
                resume.wait(timeout=5)

        memory_claim.after_read = park_writer_b
        outcome: list[BaseException | None] = []

        def write_b() -> None:
            try:
                PidStore(pid_path, pid=200, claim=memory_claim, control=control).write()
            except BaseException as e:
                outcome.append(e)
            else:
                outcome.append(None)

        writer_b = threading.Thread(target=write_b, name="writer-b")
        writer_b.start()
        assert parked.wait(timeout=5)

        PidStore(pid_path, pid=100, claim=memory_claim, control=control).write()
        resume.set()
        writer_b.join(timeout=10)

        assert not writer_b.is_alive()
        assert isinstance(outcome[0], AlreadyRunning)
        assert outcome[0].pid == 100
        assert memory_claim.files[pid_path][0] == "100\n"

    def test_sequential_reclaim_of_dead_winner(self, pid_path, memory_claim, control):
        """A winner that died before the second writer probes is simply replaced."""
        control.alive.add(200)
        first = PidStore(pid_path, pid=100, claim=memory_claim, control=control)
        second = PidStore(pid_path, pid=200, claim=memory_claim, control=control)

        first.write()
        second.write()

        assert memory_claim.files[pid_path][0] == "200\n"

    @pytest.mark.parametrize("writers", [4, 8])
    def test_many_writers_on_absent_path(self, pid_path, memory_claim, control, writers):
        pids = list(range(100, 100 + writers))
        control.alive.update(pids)
        memory_claim.before_create = once_per_thread(threading.Barrier(writers))
        stores = [PidStore(pid_path, pid=pid, claim=memory_claim, control=control) for pid in pids]

        outcomes = race(stores)

        winners = [pid for pid, error in outcomes.items() if error is None]
        assert len(winners) == 1
        assert all(
            isinstance(error, AlreadyRunning) and error.pid == winners[0]
            for pid, error in outcomes.items()
            if pid != winners[0]
        )
