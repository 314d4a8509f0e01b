"""Tests for per-flow batch processing."""

import logging
import threading
from datetime import date
from pathlib import Path

import pytest

from zfin_bridge import flow as flow_module
from zfin_bridge.copier import FileTransfer, TransferOutcome
from zfin_bridge.flow import Flow

DAY = date(2024, 3, 1)


class FailingTransfer(FileTransfer):
    """Fails every file whose name is in *doomed*."""

    def __init__(self, doomed):
        super().__init__()
        self.doomed = set(doomed)

    def transfer_one(self, flow, source, archive_dir):
        if source.name in self.doomed:
            source = source.with_name("missing-" + source.name)
        return super().transfer_one(flow, source, archive_dir)


def _seed(flow: Flow, make_file, count: int) -> list[Path]:
    return [
        make_file(flow.source_dir / f"f{i:02d}.txt", age=1000 - i)
        for i in range(count)
    ]


class TestFlowModel:
    def test_archive_dir_for(self, flow):
        assert flow.archive_dir_for(DAY) == flow.archive_root / "2024-03-01" / "OUT"

    def test_source_leaf_falls_back_for_root(self, tmp_path: Path):
        rooted = Flow("f", Path("/"), "", tmp_path, "", tmp_path / "arc")
        assert rooted.source_leaf == "files"

    def test_is_immutable(self, flow):
        with pytest.raises(AttributeError):
            flow.name = "other"  # type: ignore[misc]


class TestProcess:
    def test_relays_in_arrival_order(self, flow, make_file):
        _seed(flow, make_file, 3)

        summary = flow.process(FileTransfer(), today=DAY)

        assert [r.source.name for r in summary.records] == ["f00.txt", "f01.txt", "f02.txt"]
        assert summary.moved == 3
        assert summary.ok
        assert sorted(p.name for p in flow.target_dir.iterdir()) == [
            "f00.occ", "f01.occ", "f02.occ",
        ]
        assert summary.archive_dir == flow.archive_root / "2024-03-01" / "OUT"

    def test_batch_cap(self, flow, make_file):
        _seed(flow, make_file, 10)

        first = flow.process(FileTransfer(), max_files=3, today=DAY)
        second = flow.process(FileTransfer(), max_files=3, today=DAY)

        assert (first.found, first.selected, first.moved) == (10, 3, 3)
        assert [r.source.name for r in first.records] == ["f00.txt", "f01.txt", "f02.txt"]
        assert second.found == 7
        assert [r.source.name for r in second.records] == ["f03.txt", "f04.txt", "f05.txt"]

    def test_empty_source_creates_nothing(self, flow, caplog):
        caplog.set_level(logging.INFO)
        flow.source_dir.mkdir(parents=True)

        summary = flow.process(FileTransfer(), today=DAY)

        assert summary.found == 0
        assert summary.records == []
        assert not flow.archive_root.exists()
        assert not flow.target_dir.exists()
        assert "found" not in caplog.text

    def test_age_filter_is_applied(self, flow, make_file):
        make_file(flow.source_dir / "settled.txt", age=120)
        make_file(flow.source_dir / "fresh.txt", age=0)

        summary = flow.process(FileTransfer(), min_age_seconds=30, today=DAY)

        assert [r.source.name for r in summary.records] == ["settled.txt"]
        assert (flow.source_dir / "fresh.txt").exists()

    def test_failed_file_does_not_stop_batch(self, flow, make_file):
        _seed(flow, make_file, 3)

        summary = flow.process(FailingTransfer({"f01.txt"}), today=DAY)

        outcomes = [r.outcome for r in summary.records]
        assert outcomes == [
            TransferOutcome.MOVED,
            TransferOutcome.FAILED,
            TransferOutcome.MOVED,
        ]
        assert not summary.ok
        assert (flow.source_dir / "f01.txt").exists()

    def test_listing_failure_is_reported(self, flow, monkeypatch):
        def broken_scan(*args, **kwargs):
            raise PermissionError("listing denied")

        monkeypatch.setattr(flow_module, "scan", broken_scan)

        summary = flow.process(FileTransfer(), today=DAY)

        assert "listing denied" in summary.error
        assert not summary.ok

    def test_archive_dir_failure_is_reported(self, flow, make_file):
        make_file(flow.source_dir / "x.txt", age=60)
        flow.archive_root.parent.mkdir(parents=True, exist_ok=True)
        flow.archive_root.write_text("not a folder")

        summary = flow.process(FileTransfer(), today=DAY)

        assert summary.error
        assert summary.records == []
        assert (flow.source_dir / "x.txt").exists()

    def test_stop_between_files(self, flow, make_file):
        _seed(flow, make_file, 3)
        stop = threading.Event()

        class StopAfterFirst(FileTransfer):
            def transfer_one(self, flow, source, archive_dir):
                rec = super().transfer_one(flow, source, archive_dir)
                stop.set()
                return rec

        summary = flow.process(StopAfterFirst(), today=DAY, stop=stop)

        assert [r.source.name for r in summary.records] == ["f00.txt"]
        assert (flow.source_dir / "f01.txt").exists()
        assert (flow.source_dir / "f02.txt").exists()
