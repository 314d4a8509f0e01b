"""Tests for the arrival watcher."""

from pathlib import Path

from watchdog.events import DirCreatedEvent, FileCreatedEvent, FileMovedEvent

from zfin_bridge.watcher import ArrivalHandler, ChangeWatcher


class TestArrivalHandler:
    def test_matching_file_is_reported(self, flow):
        seen = []
        handler = ArrivalHandler(flow, seen.append)

        handler.on_created(FileCreatedEvent(str(flow.source_dir / "pay.TXT")))

        assert seen == [str(flow.source_dir / "pay.TXT")]

    def test_other_extension_and_partials_are_ignored(self, flow):
        seen = []
        handler = ArrivalHandler(flow, seen.append)

        handler.on_created(FileCreatedEvent(str(flow.source_dir / "pay.csv")))
        handler.on_created(FileCreatedEvent(str(flow.source_dir / ".pay.txt.part")))
        handler.on_created(DirCreatedEvent(str(flow.source_dir / "sub.txt")))

        assert seen == []

    def test_rename_reports_destination(self, flow):
        seen = []
        handler = ArrivalHandler(flow, seen.append)

        handler.on_moved(
            FileMovedEvent(str(flow.source_dir / "pay.tmp"), str(flow.source_dir / "pay.txt"))
        )

        assert seen == [str(flow.source_dir / "pay.txt")]


def test_watcher_start_stop(flow):
    flow.source_dir.mkdir(parents=True)
    watcher = ChangeWatcher([flow], on_arrival=lambda path: None)

    watcher.start()
    try:
        assert watcher.is_running
    finally:
        watcher.stop()

    assert not watcher.is_running


def test_watcher_skips_missing_folder(flow, caplog):
    watcher = ChangeWatcher([flow], on_arrival=lambda path: None)

    watcher.start()
    watcher.stop()

    assert "not watching missing folder" in caplog.text
    assert not Path(flow.source_dir).exists()
