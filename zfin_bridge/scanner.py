"""Source folder scanning for ZFIN Bridge.

Lists the files in a flow's source folder that are ready to be relayed:
regular files with the wanted extension that have not been modified for
at least the configured settle time. The result is ordered oldest first
so files reach the other side in the order they arrived.
"""

from __future__ import annotations

import logging
import math
import os
import time
from pathlib import Path

logger = logging.getLogger(__name__)


def split_extension(name: str) -> tuple[str, str]:
    """
    Split *name* at its last dot into ``(base, ext)``.

    A dot at index 0 does not start an extension, so ``.profile`` has
    none; ``report.`` has an empty one.
    """
    dot = name.rfind(".")
    if dot <= 0:
        return name, ""
    return name[:dot], name[dot + 1:]


def matches_extension(name: str, ext_filter: str) -> bool:
    """Return True when *name* carries *ext_filter* (case-insensitive)."""
    if not ext_filter:
        return True
    ext = split_extension(name)[1]
    return bool(ext) and ext.lower() == ext_filter.lower()


def _mtime(entry: os.DirEntry) -> float:
    """Modification time of *entry*, or +inf when it cannot be read."""
    try:
        return entry.stat().st_mtime
    except OSError as exc:
        logger.debug("Cannot read mtime of %s: %s", entry.path, exc)
        return math.inf


def scan(
    source_dir: Path,
    ext_filter: str = "",
    min_age_seconds: float = 0,
    now: float | None = None,
) -> list[Path]:
    """
    Return the relay candidates in *source_dir*, oldest first.

    Parameters
    ----------
    source_dir : Path
        Folder to list (not recursive). A missing folder yields ``[]``.
    ext_filter : str
        Lower-case extension without the dot; empty accepts every file.
    min_age_seconds : float
        Files modified more recently than this are left for a later cycle.
        0 accepts every file.
    now : float, optional
        Reference time (epoch seconds); defaults to the current time.

    Raises
    ------
    OSError
        When the folder exists but cannot be listed.
    """
    if not source_dir.is_dir():
        return []

    if now is None:
        now = time.time()

    found: list[tuple[float, str, Path]] = []
    with os.scandir(source_dir) as entries:
        for entry in entries:
            try:
                # follows symlinks: a link to a file counts, a link to a dir does not
                if not entry.is_file():
                    continue
            except OSError:
                continue
            if not matches_extension(entry.name, ext_filter):
                continue

            mtime = _mtime(entry)
            if min_age_seconds > 0 and now - mtime < min_age_seconds:
                continue
            found.append((mtime, entry.name.lower(), Path(entry.path)))

    found.sort(key=lambda item: (item[0], item[1]))
    return [path for _, _, path in found]
