"""File system watcher for ZFIN Bridge.

Uses the watchdog library to notice files arriving in the flows' source
folders between polls. The watcher never touches files itself: it only
wakes the scheduler so the next cycle starts sooner. Polling stays the
source of truth, so a missed event costs at most one poll interval.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterable
from typing import Any

from watchdog.events import (
    FileCreatedEvent,
    FileMovedEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from zfin_bridge.flow import Flow
from zfin_bridge.scanner import matches_extension

logger = logging.getLogger(__name__)


class ArrivalHandler(FileSystemEventHandler):
    """Watchdog handler that reports matching files landing in one source folder."""

    def __init__(self, flow: Flow, on_arrival: Callable[[str], None]):
        """Initialise the handler for *flow*'s source folder."""
        super().__init__()
        self._flow = flow
        self._on_arrival = on_arrival

    def _report(self, path: str) -> None:
        name = os.path.basename(path)
        if name.startswith(".") and name.endswith(".part"):
            return
        if not matches_extension(name, self._flow.source_ext):
            logger.debug("Ignoring %s (extension filter)", name)
            return
        logger.debug("[%s] arrival: %s", self._flow.name, name)
        self._on_arrival(path)

    def on_created(self, event: FileCreatedEvent) -> None:  # type: ignore[override]
        """Handle a new file creation event."""
        if event.is_directory:
            return
        self._report(os.fsdecode(event.src_path))

    def on_moved(self, event: FileMovedEvent) -> None:  # type: ignore[override]
        """Handle a file renamed into the folder."""
        if event.is_directory:
            return
        self._report(os.fsdecode(event.dest_path))


class ChangeWatcher:
    """Watches every flow's source folder and calls *on_arrival* on new files.

    Usage:
        watcher = ChangeWatcher(flows, on_arrival=scheduler.wake)
        watcher.start()
        ...
        watcher.stop()
    """

    def __init__(self, flows: Iterable[Flow], on_arrival: Callable[[str], None]):
        """Create a watcher for *flows*."""
        self._flows = list(flows)
        self._on_arrival = on_arrival
        self._observer: Any | None = None

    # ---- lifecycle ----

    def start(self) -> None:
        """Start watching the source folders that exist."""
        observer = Observer()
        watched = 0
        for flow in self._flows:
            if not flow.source_dir.is_dir():
                logger.warning(
                    "[%s] not watching missing folder: %s", flow.name, flow.source_dir
                )
                continue
            observer.schedule(
                ArrivalHandler(flow, self._on_arrival),
                str(flow.source_dir),
                recursive=False,
            )
            watched += 1
        observer.start()
        self._observer = observer
        logger.info("Watching %d source folder(s) for arrivals.", watched)

    def stop(self) -> None:
        """Stop watching and release resources."""
        if self._observer:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None
            logger.info("Watcher stopped.")

    @property
    def is_running(self) -> bool:
        """Return whether the watcher is currently active."""
        return self._observer is not None and self._observer.is_alive()
