"""
File transfer engine for ZFIN Bridge.

Delivers one source file into a flow's target folder under the target
extension, then moves the original into the batch's archive folder.
The copy always completes before the source is touched, so an
interruption at any point leaves the source file where it was.

Copies are written to a hidden ``.part`` file next to the destination
and renamed into place, so consumers of the target folder never see a
half-written file.
"""

from __future__ import annotations

import enum
import errno
import hashlib
import logging
import os
import shutil
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from zfin_bridge.scanner import split_extension

if TYPE_CHECKING:
    from zfin_bridge.flow import Flow

logger = logging.getLogger(__name__)

_HASH_CHUNK = 256 * 1024  # 256 KiB read chunks for hashing

# link() refusals that mean "no hard links here", not "destination exists"
_NO_LINK_ERRNOS = {
    errno.EPERM,
    errno.EXDEV,
    errno.EMLINK,
    errno.ENOTSUP,
    errno.EOPNOTSUPP,
    errno.ENOSYS,
}


def _sha256(filepath: Path) -> str:
    """Return the hex SHA-256 digest of *filepath*."""
    h = hashlib.sha256()
    with open(filepath, "rb") as fh:
        while chunk := fh.read(_HASH_CHUNK):
            h.update(chunk)
    return h.hexdigest()


def build_destination_name(source_name: str, target_ext: str) -> str:
    """
    Return the delivered file name for *source_name*.

    ``report.txt`` + ``occ`` -> ``report.occ``; ``noext`` + ``occ`` ->
    ``noext.occ``; an empty *target_ext* keeps the name unchanged.
    """
    if not target_ext.strip():
        return source_name
    base = split_extension(source_name)[0]
    return f"{base}.{target_ext}"


def _partial_path(dest: Path) -> Path:
    return dest.with_name(f".{dest.name}.part")


def _publish_exclusive(partial: Path, dest: Path) -> None:
    """
    Move *partial* to *dest*, raising FileExistsError if *dest* exists.

    A hard link fails atomically on an existing name, unlike rename.
    Where the filesystem has no hard links, *dest* is first claimed
    with an exclusive create and then replaced by the copy.
    """
    try:
        os.link(partial, dest)
    except FileExistsError:
        raise
    except OSError as exc:
        if exc.errno not in _NO_LINK_ERRNOS:
            raise
        fd = os.open(dest, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
        os.close(fd)
        os.replace(partial, dest)
        return
    partial.unlink()


class TransferOutcome(enum.Enum):
    MOVED = "moved"
    SKIPPED_EXISTS = "skipped-exists"
    FAILED = "failed"


@dataclass
class TransferRecord:
    """Result of relaying a single source file."""
    source: Path
    destination: Path
    archive: Path
    outcome: TransferOutcome = TransferOutcome.FAILED
    size_bytes: int = 0
    started: float = 0.0
    finished: float = 0.0
    verified: bool = False
    error: str = ""

    @property
    def duration(self) -> float:
        if self.finished and self.started:
            return self.finished - self.started
        return 0.0

    @property
    def timestamp_str(self) -> str:
        """Human-readable timestamp of when the transfer finished."""
        if self.finished:
            return datetime.fromtimestamp(self.finished).strftime("%Y-%m-%d %H:%M:%S")
        return ""


@dataclass
class BatchSummary:
    """What one flow did during one cycle."""
    flow_name: str
    found: int = 0
    selected: int = 0
    archive_dir: Path | None = None
    error: str = ""
    records: list[TransferRecord] = field(default_factory=list)

    def record(self, rec: TransferRecord) -> None:
        self.records.append(rec)

    def _count(self, outcome: TransferOutcome) -> int:
        return sum(1 for rec in self.records if rec.outcome is outcome)

    @property
    def moved(self) -> int:
        return self._count(TransferOutcome.MOVED)

    @property
    def skipped(self) -> int:
        return self._count(TransferOutcome.SKIPPED_EXISTS)

    @property
    def failed(self) -> int:
        return self._count(TransferOutcome.FAILED)

    @property
    def total_bytes(self) -> int:
        return sum(
            rec.size_bytes for rec in self.records
            if rec.outcome is TransferOutcome.MOVED
        )

    @property
    def ok(self) -> bool:
        """True when neither the flow nor any file failed."""
        return not self.error and self.failed == 0


class FileTransfer:
    """
    Copy-then-archive protocol shared by both flows.

    Parameters
    ----------
    overwrite : bool
        If True, an existing destination or archive entry is replaced.
        If False, an existing destination makes the file be skipped.
    verify : bool
        If True, compare SHA-256 digests of source and copy before the
        source is archived; otherwise only the sizes are compared.
    log : logging.Logger, optional
        Logger for transfer events; defaults to this module's logger.
    """

    def __init__(
        self,
        overwrite: bool = True,
        verify: bool = False,
        log: logging.Logger | None = None,
    ):
        self.overwrite = overwrite
        self.verify = verify
        self._log = log or logger

    def transfer_one(self, flow: Flow, source: Path, archive_dir: Path) -> TransferRecord:
        """Relay *source* for *flow*, archiving it under *archive_dir*."""
        dest = flow.target_dir / build_destination_name(source.name, flow.target_ext)
        rec = TransferRecord(
            source=source,
            destination=dest,
            archive=archive_dir / source.name,
            started=time.time(),
        )

        try:
            if self._already_delivered(flow, rec):
                return rec
            if not self.overwrite and os.path.lexists(rec.archive):
                raise FileExistsError(f"Archive entry already exists: {rec.archive}")

            if not flow.target_dir.is_dir():
                flow.target_dir.mkdir(parents=True, exist_ok=True)
                self._log.info("[%s] created directory: %s", flow.name, flow.target_dir)

            self._deliver(rec)
            if rec.outcome is TransferOutcome.SKIPPED_EXISTS:
                self._log.warning(
                    "[%s] skipped (destination exists): %s", flow.name, dest.name
                )
                return rec

            self._archive(rec)
            rec.outcome = TransferOutcome.MOVED
            rec.finished = time.time()
            self._log.info(
                "[%s] moved %s -> %s (%d bytes, archive: %s)",
                flow.name, source.name, dest.name, rec.size_bytes, rec.archive,
            )
        except OSError as exc:
            rec.outcome = TransferOutcome.FAILED
            rec.error = str(exc)
            rec.finished = time.time()
            self._log.error("[%s] failed for %s: %s", flow.name, source, exc)
        except Exception as exc:
            rec.outcome = TransferOutcome.FAILED
            rec.error = str(exc)
            rec.finished = time.time()
            self._log.exception("[%s] unexpected error for %s", flow.name, source)
        return rec

    # ---- steps ----

    def _already_delivered(self, flow: Flow, rec: TransferRecord) -> bool:
        """No-overwrite mode: leave the source alone if the destination exists."""
        if self.overwrite or not os.path.lexists(rec.destination):
            return False
        rec.outcome = TransferOutcome.SKIPPED_EXISTS
        rec.finished = time.time()
        self._log.warning(
            "[%s] skipped (destination exists): %s", flow.name, rec.destination.name
        )
        return True

    def _deliver(self, rec: TransferRecord) -> None:
        """Copy the source to a partial file, check it, rename it into place."""
        partial = _partial_path(rec.destination)
        try:
            shutil.copy2(rec.source, partial)
            rec.size_bytes = rec.source.stat().st_size
            self._check_copy(rec, partial)

            if self.overwrite:
                os.replace(partial, rec.destination)
            else:
                try:
                    _publish_exclusive(partial, rec.destination)
                except FileExistsError:
                    # appeared while we were copying
                    partial.unlink()
                    rec.outcome = TransferOutcome.SKIPPED_EXISTS
                    rec.finished = time.time()
        except BaseException:
            # never leave a half-written copy behind
            try:
                partial.unlink(missing_ok=True)
            except OSError:
                self._log.warning("Could not remove partial copy %s", partial)
            raise

    def _check_copy(self, rec: TransferRecord, partial: Path) -> None:
        copied = partial.stat().st_size
        if copied != rec.size_bytes:
            raise OSError(
                f"Post-copy size mismatch for {rec.source} "
                f"(source={rec.size_bytes}, copy={copied})"
            )
        if self.verify:
            src_hash = _sha256(rec.source)
            dst_hash = _sha256(partial)
            if src_hash != dst_hash:
                raise OSError(
                    f"Verification failed: SHA-256 mismatch "
                    f"(src={src_hash[:12]}... dst={dst_hash[:12]}...)"
                )
            rec.verified = True

    def _archive(self, rec: TransferRecord) -> None:
        """Move the delivered source into the archive folder."""
        if os.path.lexists(rec.archive):
            if not self.overwrite:
                raise FileExistsError(f"Archive entry already exists: {rec.archive}")
            rec.archive.unlink()
        shutil.move(str(rec.source), str(rec.archive))
