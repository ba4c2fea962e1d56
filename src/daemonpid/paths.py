"""Record path resolution."""

import logging
import os
from pathlib import Path

from daemonpid.errors import RecordIOError

logger = logging.getLogger(__name__)


def resolve_path(path: str | os.PathLike[str], base: Path | None = None) -> Path:
    """
    Resolve a configured record path to an absolute path.

    Relative paths are taken against ``base`` (default: the current working
    directory at call time). The parent directory is created when missing.

    Raises:
        RecordIOError: if the parent directory cannot be created.
    """
    candidate = Path(path).expanduser()
    if not candidate.is_absolute():
        candidate = (base or Path.cwd()) / candidate
    resolved = Path(os.path.abspath(candidate))

    try:
        resolved.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise RecordIOError(
            f"cannot create directory {resolved.parent}: {e.strerror or e}", path=resolved
        ) from e

    logger.debug("Resolved record path %s -> %s", path, resolved)
    return resolved
