"""Single-instance guard for ZFIN Bridge.

Holds an exclusive advisory lock on a well-known file for the whole
process lifetime. The lock file records who holds it::

    pid=12345
    started=2024-03-01 08:00:00

The operating system drops the lock when the holder dies, so a crashed
run never blocks the next one. The file itself stays on disk.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import IO

from zfin_bridge.platform_utils import try_lock_file, unlock_file

logger = logging.getLogger(__name__)


class AlreadyRunningError(RuntimeError):
    """Another process holds the instance lock."""

    def __init__(self, lock_file: Path, holder: str = ""):
        self.lock_file = lock_file
        self.holder = holder
        msg = f"Another instance is already running (lock file: {lock_file})"
        if holder:
            msg += f" [{holder}]"
        super().__init__(msg)


class InstanceLock:
    """
    Exclusive, non-blocking process lock backed by *path*.

    Usage:
        with InstanceLock(cfg.lock_file):
            scheduler.run_forever()
    """

    def __init__(self, path: Path, log: logging.Logger | None = None):
        self.path = Path(path)
        self._fh: IO[bytes] | None = None
        self._log = log or logger

    @property
    def held(self) -> bool:
        return self._fh is not None

    def acquire(self) -> None:
        """
        Take the lock or raise :class:`AlreadyRunningError`.

        OSError from creating the parent folder or opening the file
        propagates unchanged.
        """
        if self._fh is not None:
            return

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o644)
        fh = os.fdopen(fd, "r+b")
        try:
            locked = try_lock_file(fh)
        except BaseException:
            fh.close()
            raise
        if not locked:
            holder = self._read_holder(fh)
            fh.close()
            raise AlreadyRunningError(self.path, holder)

        try:
            started = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
            fh.seek(0)
            fh.truncate()
            fh.write(f"pid={os.getpid()}\nstarted={started}\n".encode("utf-8"))
            fh.flush()
            os.fsync(fh.fileno())
        except BaseException:
            unlock_file(fh)
            fh.close()
            raise

        self._fh = fh
        self._log.info("Instance lock acquired: %s", self.path)

    def release(self) -> None:
        """Drop the lock and close the handle. Safe to call repeatedly."""
        fh, self._fh = self._fh, None
        if fh is None:
            return
        try:
            unlock_file(fh)
        except OSError as exc:
            self._log.warning("Could not unlock %s: %s", self.path, exc)
        finally:
            fh.close()
        self._log.info("Instance lock released: %s", self.path)

    @staticmethod
    def _read_holder(fh: IO[bytes]) -> str:
        """Best-effort summary of the current holder's record."""
        try:
            fh.seek(0)
            text = fh.read(256).decode("utf-8", errors="replace")
        except OSError:
            return ""
        return ", ".join(line.strip() for line in text.splitlines() if line.strip())

    def __enter__(self) -> "InstanceLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
