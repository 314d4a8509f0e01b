"""
Main application controller for ZFIN Bridge.

Ties together configuration, logging, the instance lock, the two relay
flows, retention, the optional change watcher, and the scheduler, and
maps the outcome to a process exit code.
"""

import logging
import logging.handlers
import sys
from pathlib import Path

from zfin_bridge import __app_name__, __version__
from zfin_bridge.config import Config, ConfigError
from zfin_bridge.flow import Flow
from zfin_bridge.lock import AlreadyRunningError, InstanceLock
from zfin_bridge.platform_utils import install_signal_handlers, restore_signal_handlers
from zfin_bridge.retention import RetentionSweeper
from zfin_bridge.scheduler import EngineContext, Scheduler
from zfin_bridge.watcher import ChangeWatcher

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2

LOG_FILE_NAME = "zfin-bridge.log"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

ENGINE_LOGGER = "zfin_bridge.engine"


def setup_logging(cfg: Config) -> list[logging.Handler]:
    """Configure rotating file log and stderr handler on the root logger.

    Returns the handlers added so the caller can remove them again.
    """
    cfg.log_dir.mkdir(parents=True, exist_ok=True)
    level = getattr(logging, cfg.log_level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    fmt = logging.Formatter(LOG_FORMAT)

    # Rotating file handler
    fh = logging.handlers.RotatingFileHandler(
        str(cfg.log_dir / LOG_FILE_NAME),
        maxBytes=cfg.log_rotate_bytes,
        backupCount=cfg.log_rotate_files,
        encoding="utf-8",
    )
    fh.setLevel(level)
    fh.setFormatter(fmt)
    root_logger.addHandler(fh)

    # Stderr handler (console / service manager journal)
    sh = logging.StreamHandler(sys.stderr)
    sh.setLevel(level)
    sh.setFormatter(fmt)
    root_logger.addHandler(sh)
    return [fh, sh]


def teardown_logging(handlers: list[logging.Handler]) -> None:
    """Detach and close handlers returned by :func:`setup_logging`."""
    root_logger = logging.getLogger()
    for handler in handlers:
        root_logger.removeHandler(handler)
        handler.close()


def build_flows(cfg: Config) -> tuple[Flow, Flow]:
    """Return the BANK->ZFIN and ZFIN->BANK flows described by *cfg*."""
    bank_to_zfin = Flow(
        name="BANK->ZFIN",
        source_dir=cfg.bank_out_path,
        source_ext=cfg.bank_to_zfin_source_ext,
        target_dir=cfg.zfin_in_path,
        target_ext=cfg.bank_to_zfin_target_ext,
        archive_root=cfg.bank_archive_path,
    )
    zfin_to_bank = Flow(
        name="ZFIN->BANK",
        source_dir=cfg.zfin_out_path,
        source_ext=cfg.zfin_to_bank_source_ext,
        target_dir=cfg.bank_in_path,
        target_ext=cfg.zfin_to_bank_target_ext,
        archive_root=cfg.zfin_archive_path,
    )
    if bank_to_zfin.source_dir == zfin_to_bank.source_dir:
        raise ConfigError(
            f"Both directions read from the same folder: {bank_to_zfin.source_dir}"
        )
    return bank_to_zfin, zfin_to_bank


def init_directories(flows: tuple[Flow, ...], log: logging.Logger) -> None:
    """Create every source, target and archive folder that is missing."""
    seen: set[Path] = set()
    for flow in flows:
        for folder in (flow.source_dir, flow.target_dir, flow.archive_root):
            if folder in seen:
                continue
            seen.add(folder)
            if not folder.is_dir():
                folder.mkdir(parents=True, exist_ok=True)
                log.info("Created directory: %s", folder)


class App:
    """
    Central orchestrator.

    Raises :class:`ConfigError` from the constructor when the flows
    cannot be built; nothing on disk has been touched at that point.
    """

    def __init__(self, config: Config, run_once: bool = False) -> None:
        self.config = config
        self.run_once = run_once
        self.flows = build_flows(config)
        self.log = logging.getLogger(ENGINE_LOGGER)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        """Run the bridge and return the process exit code."""
        try:
            handlers = setup_logging(self.config)
        except OSError as exc:
            print(f"Cannot set up logging in {self.config.log_dir}: {exc}", file=sys.stderr)
            return EXIT_FAILURE

        try:
            return self._run()
        finally:
            teardown_logging(handlers)

    def _run(self) -> int:
        cfg = self.config
        log = self.log
        log.info("%s %s starting.", __app_name__, __version__)
        for key in cfg.unknown_keys:
            log.warning("Ignoring unknown config key: %s", key)

        ctx = EngineContext(
            config=cfg,
            log=log,
            lock=InstanceLock(cfg.lock_file, log=log),
            retention=RetentionSweeper(
                [flow.archive_root for flow in self.flows],
                cfg.archive_retention_days,
                log=log,
            ),
        )

        try:
            ctx.lock.acquire()
        except AlreadyRunningError as exc:
            log.error("%s", exc)
            return EXIT_FAILURE
        except OSError as exc:
            log.error("Cannot open lock file %s: %s", cfg.lock_file, exc)
            return EXIT_FAILURE

        watcher: ChangeWatcher | None = None
        previous_handlers: dict = {}
        try:
            init_directories(self.flows, log)
            log.info("Config loaded from %s", cfg.source)
            log.info("Mode: %s", "single pass" if self.run_once else "daemon")

            scheduler = Scheduler(ctx, self.flows)
            previous_handlers = install_signal_handlers(scheduler.stop)

            if self.run_once:
                report = scheduler.run_once()
                return EXIT_OK if report.ok else EXIT_FAILURE

            if cfg.wake_on_change:
                watcher = ChangeWatcher(self.flows, on_arrival=scheduler.wake)
                watcher.start()
            scheduler.run_forever()
            return EXIT_OK
        except Exception:
            log.exception("Fatal error")
            return EXIT_FAILURE
        finally:
            if watcher:
                watcher.stop()
            restore_signal_handlers(previous_handlers)
            ctx.lock.release()
            log.info("%s stopped.", __app_name__)
