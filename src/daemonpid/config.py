"""Configuration for daemonpid stores and the record watcher."""

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

_TRUE_VALUES = {"1", "true", "yes", "on"}

MIN_POLL_RATE = 0.1


def _env_flag(env: Mapping[str, str], name: str, default: bool) -> bool:
    value = env.get(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in _TRUE_VALUES


@dataclass(slots=True)
class StoreConfig:
    """Settings shared by PidStore, RecordMonitor and the status app."""

    path: str = "pid"
    reap_stale: bool = False
    verify_identity: bool = False
    poll_rate: float = 2.0
    # Extra record paths shown by the status app alongside ``path``.
    watch: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.poll_rate = max(MIN_POLL_RATE, float(self.poll_rate))

    @property
    def paths(self) -> list[str]:
        """Every record path this configuration names, without duplicates."""
        return list(dict.fromkeys([self.path, *self.watch]))

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "StoreConfig":
        """
        Build a config from ``DAEMONPID_*`` environment variables.

        ``DAEMONPID_PATH`` sets the record path and ``DAEMONPID_WATCH`` adds
        more paths separated by ``os.pathsep``. Boolean variables accept
        1/true/yes/on. Raises ValueError for a non-numeric poll rate.
        """
        env = os.environ if env is None else env
        defaults = cls()

        poll_rate = env.get("DAEMONPID_POLL_RATE", "").strip()
        watch = [p for p in env.get("DAEMONPID_WATCH", "").split(os.pathsep) if p.strip()]

        return cls(
            path=env.get("DAEMONPID_PATH", "").strip() or defaults.path,
            reap_stale=_env_flag(env, "DAEMONPID_REAP_STALE", defaults.reap_stale),
            verify_identity=_env_flag(env, "DAEMONPID_VERIFY_IDENTITY", defaults.verify_identity),
            poll_rate=float(poll_rate) if poll_rate else defaults.poll_rate,
            watch=watch,
        )
