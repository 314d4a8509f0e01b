"""Shared fixtures for the ZFIN Bridge test suite."""

import os
import time
from pathlib import Path

import pytest

from zfin_bridge.flow import Flow


@pytest.fixture
def make_file():
    """Return a factory that writes a file and backdates its mtime by *age* seconds."""

    def _make(path: Path, content: bytes = b"payload", age: float = 0.0, mtime: float | None = None) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        if mtime is None:
            mtime = time.time() - age
        os.utime(path, (mtime, mtime))
        return path

    return _make


@pytest.fixture
def flow(tmp_path: Path) -> Flow:
    """A BANK->ZFIN style flow rooted in a temporary folder."""
    return Flow(
        name="BANK->ZFIN",
        source_dir=tmp_path / "bank" / "OUT",
        source_ext="txt",
        target_dir=tmp_path / "zfin" / "in",
        target_ext="occ",
        archive_root=tmp_path / "bank" / "ARH",
    )


@pytest.fixture
def write_config(tmp_path: Path):
    """Return a factory that writes a config.ini with sane test defaults."""

    def _write(**overrides) -> Path:
        values = {
            "bank_root": "bank",
            "zfin_root": "zfin",
            "min_file_age_seconds": "0",
            "poll_interval_seconds": "1",
            "lock_file": "runtime/test.lock",
            "log_dir": "logs",
        }
        values.update({k: str(v) for k, v in overrides.items()})
        path = tmp_path / "config.ini"
        path.write_text(
            "\n".join(f"{k} = {v}" for k, v in values.items()) + "\n",
            encoding="utf-8",
        )
        return path

    return _write
