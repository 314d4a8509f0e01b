"""
Cross-platform utilities for ZFIN Bridge.

Centralises all OS-detection logic so every other module can import
a single canonical set of helpers rather than scattering ``sys.platform``
checks throughout the codebase.

Supported platforms:
  - Windows 10/11 and Windows Server
  - Linux
  - macOS (best-effort)
"""

from __future__ import annotations

import logging
import signal
import sys
from collections.abc import Callable
from typing import IO

logger = logging.getLogger(__name__)

# ---- platform flags ----------------------------------------------------

IS_WINDOWS: bool = sys.platform == "win32"
IS_MACOS: bool = sys.platform == "darwin"
IS_LINUX: bool = sys.platform.startswith("linux")

if IS_WINDOWS:
    import msvcrt
else:
    import fcntl

# ---- advisory file locks -----------------------------------------------


def try_lock_file(fh: IO[bytes]) -> bool:
    """
    Take a non-blocking exclusive lock on *fh*.

    Returns False when another handle already holds it.

    - Windows : ``msvcrt.locking`` on the first byte
    - POSIX   : ``fcntl.flock``; held per open file, so a second handle in
      the same process conflicts too
    """
    try:
        if IS_WINDOWS:
            fh.seek(0)
            msvcrt.locking(fh.fileno(), msvcrt.LK_NBLCK, 1)
        else:
            fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
    except (BlockingIOError, PermissionError):
        return False
    except OSError as exc:
        # msvcrt reports contention as EACCES / EDEADLOCK
        if IS_WINDOWS:
            logger.debug("Lock attempt refused: %s", exc)
            return False
        raise
    return True


def unlock_file(fh: IO[bytes]) -> None:
    """Release a lock taken with :func:`try_lock_file`."""
    if IS_WINDOWS:
        fh.seek(0)
        msvcrt.locking(fh.fileno(), msvcrt.LK_UNLCK, 1)
    else:
        fcntl.flock(fh.fileno(), fcntl.LOCK_UN)


# ---- termination signals -----------------------------------------------


class StopFlag:
    """
    Stop request that a signal handler may set.

    Same ``set`` / ``is_set`` surface as :class:`threading.Event`, but
    setting it takes no lock, so a handler running on the thread that
    is inside a wait cannot block on that wait's lock.
    """

    def __init__(self) -> None:
        self._set = False

    def set(self) -> None:
        self._set = True

    def is_set(self) -> bool:
        return self._set


def termination_signals() -> list[signal.Signals]:
    """Return the signals that should trigger a clean shutdown."""
    signals = [signal.SIGINT, signal.SIGTERM]
    if hasattr(signal, "SIGBREAK"):
        # Ctrl-Break in a Windows console
        signals.append(signal.SIGBREAK)
    return signals


def install_signal_handlers(callback: Callable[[], None]) -> dict:
    """
    Route every termination signal to *callback*.

    Returns the previous handlers so the caller can restore them.
    """
    previous = {}

    def _handler(signum, frame):
        logger.info("Received signal %d, stopping after the current file.", signum)
        callback()

    for sig in termination_signals():
        previous[sig] = signal.signal(sig, _handler)
    return previous


def restore_signal_handlers(previous: dict) -> None:
    """Reinstate handlers returned by :func:`install_signal_handlers`."""
    for sig, handler in previous.items():
        signal.signal(sig, handler)
