"""
Cycle driver for ZFIN Bridge.

A cycle relays BANK->ZFIN, then ZFIN->BANK, then gives the retention
sweeper its once-a-day chance. ``run_once`` performs a single cycle;
``run_forever`` repeats cycles with a poll-interval pause until
:meth:`Scheduler.stop` is called, typically from a signal handler.

Everything runs on the calling thread. A stop request never interrupts
a file mid-transfer: the current file finishes, no further file or
cycle starts, and the caller releases the instance lock.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date

from zfin_bridge.config import Config
from zfin_bridge.copier import BatchSummary, FileTransfer
from zfin_bridge.flow import Flow
from zfin_bridge.lock import InstanceLock
from zfin_bridge.platform_utils import StopFlag
from zfin_bridge.retention import RetentionSweeper, SweepResult

logger = logging.getLogger(__name__)

# longest a pause runs before it looks at the stop flag again
PAUSE_SLICE = 0.25


@dataclass
class EngineContext:
    """Process-wide state, built once at startup and handed down explicitly."""
    config: Config
    log: logging.Logger
    lock: InstanceLock
    retention: RetentionSweeper


@dataclass
class CycleReport:
    """Aggregated outcome of one cycle."""
    number: int
    batches: list[BatchSummary] = field(default_factory=list)
    retention: SweepResult | None = None
    retention_error: str = ""
    interrupted: bool = False

    @property
    def moved(self) -> int:
        return sum(b.moved for b in self.batches)

    @property
    def failed(self) -> int:
        return sum(b.failed for b in self.batches)

    @property
    def ok(self) -> bool:
        """True when no flow, file or retention step failed."""
        if self.retention_error:
            return False
        if self.retention is not None and not self.retention.ok:
            return False
        return all(b.ok for b in self.batches)


class Scheduler:
    """Runs the flows of one bridge, one cycle at a time."""

    def __init__(
        self,
        ctx: EngineContext,
        flows: Sequence[Flow],
        transfer: FileTransfer | None = None,
    ):
        self.ctx = ctx
        self.flows = list(flows)
        self.transfer = transfer or FileTransfer(
            overwrite=ctx.config.overwrite_existing,
            verify=ctx.config.verify_copies,
            log=ctx.log,
        )
        self.cycles = 0
        self._stop = StopFlag()
        self._wake = threading.Event()

    # ---- control ----

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        """
        Ask the loop to finish the current file and exit.

        Safe to call from a signal handler: it only sets a flag, which
        the running pause notices within :data:`PAUSE_SLICE` seconds.
        """
        self._stop.set()

    def wake(self, path: str | None = None) -> None:
        """Cut the current pause short (called from the change watcher)."""
        self._wake.set()

    # ---- cycles ----

    def cycle(self, today: date | None = None, now: float | None = None) -> CycleReport:
        """Process every flow once, then run retention if it is due."""
        self.cycles += 1
        cfg = self.ctx.config
        report = CycleReport(number=self.cycles)

        for flow in self.flows:
            if self.stopping:
                report.interrupted = True
                break
            report.batches.append(
                flow.process(
                    self.transfer,
                    min_age_seconds=cfg.min_file_age,
                    max_files=cfg.max_files_per_cycle,
                    today=today,
                    now=now,
                    stop=self._stop,
                    log=self.ctx.log,
                )
            )

        if self.stopping:
            report.interrupted = True
            return report

        try:
            report.retention = self.ctx.retention.sweep_if_due(today)
        except Exception as exc:
            report.retention_error = str(exc)
            self.ctx.log.exception("[RETENTION] unexpected error")
        return report

    def run_once(self, today: date | None = None) -> CycleReport:
        """Single verification pass."""
        report = self.cycle(today=today)
        if report.ok:
            self.ctx.log.info("Single pass finished: %d file(s) moved.", report.moved)
        else:
            self.ctx.log.error(
                "Single pass finished with errors: %d moved, %d failed.",
                report.moved, report.failed,
            )
        return report

    def run_forever(self) -> None:
        """Cycle until :meth:`stop` is called."""
        interval = self.ctx.config.poll_interval
        self.ctx.log.info("Polling every %ds.", interval)
        while not self.stopping:
            self.cycle()
            if self.stopping:
                break
            self._pause(interval)
        self.ctx.log.info("Scheduler stopped after %d cycle(s).", self.cycles)

    def _pause(self, interval: float) -> None:
        woke_early = self._sleep(interval, self._wake)
        self._wake.clear()
        if self.stopping or not woke_early:
            return
        # give the new arrival time to pass the age filter
        settle = self.ctx.config.min_file_age
        if settle:
            self._sleep(settle)

    def _sleep(self, seconds: float, wake: threading.Event | None = None) -> bool:
        """
        Wait up to *seconds* in short slices, ending early on stop.

        Returns True when *wake* was set before the time ran out.
        """
        deadline = time.monotonic() + seconds
        while not self.stopping:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            step = min(PAUSE_SLICE, remaining)
            if wake is None:
                time.sleep(step)
            elif wake.wait(timeout=step):
                return True
        return False
