"""Tests for archive retention."""

import os
import sys
from datetime import date
from pathlib import Path

import pytest

from zfin_bridge import retention
from zfin_bridge.retention import RetentionSweeper, delete_tree, parse_archive_date

TODAY = date(2024, 3, 10)


def _day_folder(root: Path, name: str, files: int = 2) -> Path:
    folder = root / name / "OUT"
    folder.mkdir(parents=True)
    for i in range(files):
        (folder / f"f{i}.txt").write_text("x")
    return root / name


class TestParseArchiveDate:
    def test_valid(self):
        assert parse_archive_date("2024-03-01") == date(2024, 3, 1)

    @pytest.mark.parametrize("name", ["notes", "2024-3-1", "2024-13-01", "20240301", "2024-03-01x"])
    def test_invalid(self, name):
        assert parse_archive_date(name) is None


class TestSweep:
    def test_horizon(self, tmp_path: Path):
        old = _day_folder(tmp_path, "2024-03-03")
        boundary = _day_folder(tmp_path, "2024-03-05")
        recent = _day_folder(tmp_path, "2024-03-06")
        notes = _day_folder(tmp_path, "notes")
        ancient_name = _day_folder(tmp_path, "1999-01-01 backup")

        result = RetentionSweeper([tmp_path], 5).sweep_if_due(TODAY)

        assert result.deleted == [old]
        assert not old.exists()
        assert boundary.exists()
        assert recent.exists()
        assert notes.exists()
        assert ancient_name.exists()
        assert result.ok

    def test_plain_files_are_ignored(self, tmp_path: Path):
        stray = tmp_path / "2020-01-01"
        stray.write_text("a file, not a folder")

        RetentionSweeper([tmp_path], 5).sweep_if_due(TODAY)

        assert stray.exists()

    def test_disabled_when_zero(self, tmp_path: Path):
        old = _day_folder(tmp_path, "2020-01-01")
        sweeper = RetentionSweeper([tmp_path], 0)

        assert sweeper.sweep_if_due(TODAY) is None
        assert old.exists()

    def test_runs_once_per_day(self, tmp_path: Path):
        sweeper = RetentionSweeper([tmp_path], 5)

        assert sweeper.sweep_if_due(TODAY) is not None
        _day_folder(tmp_path, "2024-03-01")
        assert sweeper.sweep_if_due(TODAY) is None
        assert (tmp_path / "2024-03-01").exists()

        result = sweeper.sweep_if_due(date(2024, 3, 11))
        assert result.deleted == [tmp_path / "2024-03-01"]

    def test_sweeps_every_root(self, tmp_path: Path):
        bank = tmp_path / "bank"
        zfin = tmp_path / "zfin"
        a = _day_folder(bank, "2024-01-01")
        b = _day_folder(zfin, "2024-01-02")

        result = RetentionSweeper([bank, zfin, bank], 5).sweep_if_due(TODAY)

        assert result.deleted == [a, b]

    def test_missing_root_is_fine(self, tmp_path: Path):
        result = RetentionSweeper([tmp_path / "nope"], 5).sweep_if_due(TODAY)
        assert result.ok
        assert result.deleted == []

    def test_failure_is_logged_and_cursor_advances(self, tmp_path: Path, monkeypatch, caplog):
        bad = _day_folder(tmp_path, "2024-01-01")
        good = _day_folder(tmp_path, "2024-01-02")
        real_delete = retention.delete_tree

        def flaky_delete(path):
            if path == bad:
                return [(path, PermissionError("in use"))]
            return real_delete(path)

        monkeypatch.setattr(retention, "delete_tree", flaky_delete)
        sweeper = RetentionSweeper([tmp_path], 5)

        result = sweeper.sweep_if_due(TODAY)

        assert result.deleted == [good]
        assert [p for p, _ in result.failed] == [bad]
        assert not result.ok
        assert sweeper.last_run == TODAY
        assert "in use" in caplog.text
        assert sweeper.sweep_if_due(TODAY) is None


class TestDeleteTree:
    def test_removes_nested_content(self, tmp_path: Path):
        root = tmp_path / "doomed"
        (root / "a" / "b").mkdir(parents=True)
        (root / "a" / "b" / "deep.txt").write_text("x")
        (root / "top.txt").write_text("x")

        assert delete_tree(root) == []
        assert not root.exists()

    @pytest.mark.skipif(sys.platform == "win32", reason="symlinks need privileges on Windows")
    def test_does_not_follow_directory_symlinks(self, tmp_path: Path):
        outside = tmp_path / "keep"
        outside.mkdir()
        (outside / "precious.txt").write_text("x")
        root = tmp_path / "doomed"
        root.mkdir()
        os.symlink(outside, root / "link")

        assert delete_tree(root) == []
        assert not root.exists()
        assert (outside / "precious.txt").exists()
