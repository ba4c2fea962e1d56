"""Atomic filesystem primitives used to claim a record path.

PidStore only talks to the ``AtomicClaim`` protocol, so tests can swap in an
in-memory implementation and drive races deterministically.
"""

import contextlib
import errno
import logging
import os
import tempfile
import uuid
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

# Errors meaning "this filesystem cannot hard link", not "the path is taken".
_NO_LINK_ERRNOS = {errno.EPERM, errno.ENOTSUP, errno.EOPNOTSUPP, errno.EMLINK, errno.ENOSYS}


class AtomicClaim(Protocol):
    """Filesystem operations a store relies on for cross-process exclusion."""

    def create_exclusive(self, path: Path, content: str) -> bool:
        """Create ``path`` holding ``content``; return False if it already exists."""
        ...

    def take_over(self, path: Path, expected: str) -> bool:
        """
        Remove ``path`` only if it still holds ``expected``.

        Returns True if this caller removed it. The path must then be
        claimed again through ``create_exclusive``.
        """
        ...

    def read(self, path: Path) -> tuple[str, float] | None:
        """Return ``(content, mtime)`` or None when ``path`` does not exist."""
        ...

    def remove(self, path: Path) -> bool:
        """Remove ``path``; return False if it was already gone."""
        ...


class FileSystemClaim:
    """
    AtomicClaim backed by the local filesystem.

    Exclusive creation writes the content to a private temp file and then
    hard links it into place, so the record never becomes visible empty or
    half written. Filesystems without hard links fall back to O_EXCL, where the
    record is briefly empty before its pid is written; readers must not take
    an empty record for an abandoned one without reading it again.

    OSError is propagated unchanged; callers decide how to classify it.
    """

    def create_exclusive(self, path: Path, content: str) -> bool:
        tmp = self._write_temp(path, content)
        try:
            os.link(tmp, path)
        except FileExistsError:
            return False
        except OSError as e:
            if e.errno not in _NO_LINK_ERRNOS:
                raise
            logger.debug("Hard links unsupported for %s, using O_EXCL", path)
            return self._create_excl(path, content)
        finally:
            with contextlib.suppress(OSError):
                os.unlink(tmp)
        return True

    def take_over(self, path: Path, expected: str) -> bool:
        """
        Rename the record aside and keep it there only if it held ``expected``.

        Only one caller's rename of a given file can succeed. A file that
        turns out to be newer than the one probed is linked back into place
        unless another claim has already taken the path.
        """
        current = self.read(path)
        if current is None or current[0] != expected:
            return False

        aside = path.with_name(f".{path.name}.{uuid.uuid4().hex}.stale")
        try:
            os.rename(path, aside)
        except FileNotFoundError:
            return False
        try:
            with open(aside, encoding="ascii", errors="replace") as f:
                taken = f.read()
            if taken == expected:
                return True
            logger.debug("Record %s changed before take-over, restoring it", path)
            try:
                os.link(aside, path)
            except FileExistsError:
                logger.warning("Record %s was reclaimed while a newer record was set aside", path)
            except OSError as e:
                if e.errno not in _NO_LINK_ERRNOS:
                    raise
                self._create_excl(path, taken)
            return False
        finally:
            with contextlib.suppress(OSError):
                os.unlink(aside)

    def read(self, path: Path) -> tuple[str, float] | None:
        try:
            with open(path, encoding="ascii", errors="replace") as f:
                content = f.read()
                mtime = os.fstat(f.fileno()).st_mtime
        except FileNotFoundError:
            return None
        return content, mtime

    def remove(self, path: Path) -> bool:
        try:
            os.unlink(path)
        except FileNotFoundError:
            return False
        return True

    def _write_temp(self, path: Path, content: str) -> str:
        """Write content to a synced temp file beside ``path`` and return its name."""
        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            os.fchmod(fd, 0o644)
            os.write(fd, content.encode("ascii"))
            os.fsync(fd)
        except BaseException:
            os.close(fd)
            with contextlib.suppress(OSError):
                os.unlink(tmp)
            raise
        os.close(fd)
        return tmp

    def _create_excl(self, path: Path, content: str) -> bool:
        try:
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
        except FileExistsError:
            return False
        try:
            os.write(fd, content.encode("ascii"))
            os.fsync(fd)
        except BaseException:
            os.close(fd)
            with contextlib.suppress(OSError):
                os.unlink(path)
            raise
        os.close(fd)
        return True
