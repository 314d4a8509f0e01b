"""Relay directions for ZFIN Bridge.

A :class:`Flow` binds one source folder to one target folder, together
with the extensions on each side and the archive root that keeps the
processed originals. ``Flow.process`` runs one batch: scan, cap, create
the day's archive folder, transfer each candidate in order.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import date
from pathlib import Path

from zfin_bridge.copier import BatchSummary, FileTransfer
from zfin_bridge.platform_utils import StopFlag
from zfin_bridge.scanner import scan

logger = logging.getLogger(__name__)

ARCHIVE_DATE_FORMAT = "%Y-%m-%d"


@dataclass(frozen=True)
class Flow:
    """One configured relay direction."""
    name: str
    source_dir: Path
    source_ext: str
    target_dir: Path
    target_ext: str
    archive_root: Path

    @property
    def source_leaf(self) -> str:
        """Folder name used for this flow inside a dated archive folder."""
        return self.source_dir.name or "files"

    def archive_dir_for(self, day: date) -> Path:
        """Return ``<archive_root>/<yyyy-mm-dd>/<source leaf>`` for *day*."""
        return self.archive_root / day.strftime(ARCHIVE_DATE_FORMAT) / self.source_leaf

    def process(
        self,
        transfer: FileTransfer,
        min_age_seconds: float = 0,
        max_files: int = 0,
        today: date | None = None,
        now: float | None = None,
        stop: threading.Event | StopFlag | None = None,
        log: logging.Logger | None = None,
    ) -> BatchSummary:
        """
        Relay one batch of settled files.

        Listing and archive-folder failures are caught here and reported
        on the returned summary; per-file failures are reported on its
        records. A set *stop* flag ends the batch between two files.
        """
        log = log or logger
        summary = BatchSummary(flow_name=self.name)

        try:
            candidates = scan(self.source_dir, self.source_ext, min_age_seconds, now=now)
            summary.found = len(candidates)
            if not candidates:
                return summary

            if max_files > 0 and len(candidates) > max_files:
                candidates = candidates[:max_files]
            summary.selected = len(candidates)
            log.info(
                "[%s] found %d file(s), processing %d",
                self.name, summary.found, summary.selected,
            )

            archive_dir = self.archive_dir_for(today or date.today())
            archive_dir.mkdir(parents=True, exist_ok=True)
            summary.archive_dir = archive_dir
        except OSError as exc:
            summary.error = str(exc)
            log.error("[%s] flow error: %s", self.name, exc)
            return summary
        except Exception as exc:
            summary.error = str(exc)
            log.exception("[%s] unexpected flow error", self.name)
            return summary

        for index, source in enumerate(candidates):
            if stop is not None and stop.is_set():
                log.info(
                    "[%s] stop requested, %d file(s) left for the next run",
                    self.name, len(candidates) - index,
                )
                break
            summary.record(transfer.transfer_one(self, source, archive_dir))

        if summary.skipped or summary.failed:
            log.info(
                "[%s] batch done: %d moved, %d skipped, %d failed",
                self.name, summary.moved, summary.skipped, summary.failed,
            )
        return summary
