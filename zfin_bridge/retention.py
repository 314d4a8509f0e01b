"""Archive retention for ZFIN Bridge.

Each archive root holds one ``yyyy-mm-dd`` folder per processing day.
Folders older than the retention horizon are deleted, at most once per
calendar day per process. Anything not named like a date is left alone.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, timedelta
from pathlib import Path

logger = logging.getLogger(__name__)

_DATE_DIR = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_archive_date(name: str) -> date | None:
    """Return the date encoded in an archive folder name, or None."""
    if not _DATE_DIR.match(name):
        return None
    try:
        return date.fromisoformat(name)
    except ValueError:
        return None


def delete_tree(root: Path) -> list[tuple[Path, OSError]]:
    """
    Remove *root* and everything under it, children before parents.

    Symlinks are unlinked, never followed, so a link to a directory
    outside the tree leaves that directory untouched. Every entry is
    attempted; the failures are returned rather than raised.
    """
    errors: list[tuple[Path, OSError]] = []

    if root.is_symlink() or not root.is_dir():
        try:
            root.unlink(missing_ok=True)
        except OSError as exc:
            errors.append((root, exc))
        return errors

    try:
        with os.scandir(root) as it:
            entries = list(it)
    except OSError as exc:
        errors.append((root, exc))
        entries = []

    for entry in entries:
        path = Path(entry.path)
        try:
            is_dir = entry.is_dir(follow_symlinks=False)
        except OSError:
            is_dir = False
        if is_dir:
            errors.extend(delete_tree(path))
            continue
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            errors.append((path, exc))

    try:
        root.rmdir()
    except FileNotFoundError:
        pass
    except OSError as exc:
        errors.append((root, exc))
    return errors


@dataclass
class SweepResult:
    """Outcome of one retention pass."""
    deleted: list[Path] = field(default_factory=list)
    failed: list[tuple[Path, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


class RetentionSweeper:
    """
    Deletes dated archive folders older than *retention_days*.

    The instance remembers the last day it ran; a new process always
    sweeps once on its first cycle.
    """

    def __init__(
        self,
        archive_roots: Iterable[Path],
        retention_days: int,
        log: logging.Logger | None = None,
    ):
        self.archive_roots = list(dict.fromkeys(archive_roots))
        self.retention_days = retention_days
        self.last_run: date | None = None
        self._log = log or logger

    @property
    def enabled(self) -> bool:
        return self.retention_days > 0

    def is_due(self, today: date) -> bool:
        return self.enabled and self.last_run != today

    def sweep_if_due(self, today: date | None = None) -> SweepResult | None:
        """Sweep every archive root unless disabled or already done today."""
        today = today or date.today()
        if not self.is_due(today):
            return None

        result = SweepResult()
        try:
            for root in self.archive_roots:
                self._sweep_root(root, today, result)
        finally:
            # failed folders wait for tomorrow
            self.last_run = today
        return result

    def _sweep_root(self, root: Path, today: date, result: SweepResult) -> None:
        if not root.is_dir():
            return

        threshold = today - timedelta(days=self.retention_days)
        try:
            with os.scandir(root) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as exc:
            result.failed.append((root, str(exc)))
            self._log.error("[RETENTION] cleanup error for %s: %s", root, exc)
            return

        for entry in entries:
            try:
                if not entry.is_dir():
                    continue
            except OSError:
                continue
            folder_date = parse_archive_date(entry.name)
            if folder_date is None or folder_date >= threshold:
                continue

            path = Path(entry.path)
            errors = delete_tree(path)
            if errors:
                first_path, first_exc = errors[0]
                result.failed.append((path, str(first_exc)))
                self._log.error(
                    "[RETENTION] could not fully delete %s (%d error(s), first: %s: %s)",
                    path, len(errors), first_path, first_exc,
                )
            else:
                result.deleted.append(path)
                self._log.info("[RETENTION] deleted archive folder: %s", path)
