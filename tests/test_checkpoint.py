"""
Tests for checkpoint.py - atomic checkpoint files.
"""

import json

import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from docgen_progress.checkpoint import (
    atomic_write_json,
    clear_checkpoint,
    load_checkpoint,
    save_checkpoint,
)
from docgen_progress.progress import TaskRegistry, TaskStatus
from docgen_progress.progress.snapshot import SnapshotCodec


@pytest.fixture
def snapshot(clock):
    reg = TaskRegistry(clock=clock)
    reg.register("a", "Task A")
    reg.register("b", "Task B")
    reg.start("a")
    reg.complete("a")
    reg.update("b", 30)
    return SnapshotCodec().snapshot(reg, interrupted=True)


class TestAtomicWrite:
    def test_writes_json(self, temp_dir):
        path = temp_dir / "nested" / "data.json"
        atomic_write_json(path, {"key": "значение"})

        assert json.loads(path.read_text(encoding="utf-8")) == {"key": "значение"}

    def test_no_temp_files_left(self, temp_dir):
        path = temp_dir / "data.json"
        atomic_write_json(path, {"a": 1})
        atomic_write_json(path, {"a": 2})

        assert [p.name for p in temp_dir.iterdir()] == ["data.json"]
        assert json.loads(path.read_text())["a"] == 2


class TestCheckpoint:
    """Tests for save/load/clear"""

    def test_save_and_load(self, temp_dir, snapshot):
        path = save_checkpoint(temp_dir / "checkpoint.json", snapshot)
        data = load_checkpoint(path)

        assert data["version"] == 2
        assert data["interrupted"] is True
        assert data["currentTask"] == "b"
        assert [t["id"] for t in data["tasks"]] == ["a", "b"]

    def test_loaded_data_restores(self, temp_dir, snapshot):
        path = save_checkpoint(temp_dir / "checkpoint.json", snapshot)
        reg = TaskRegistry()

        SnapshotCodec().restore(reg, load_checkpoint(path))

        assert reg.get("a").status == TaskStatus.COMPLETED
        assert reg.get("b").status == TaskStatus.PENDING
        assert reg.get("b").progress == 30

    def test_missing_file(self, temp_dir):
        assert load_checkpoint(temp_dir / "nope.json") is None

    def test_corrupt_file(self, temp_dir, caplog):
        path = temp_dir / "checkpoint.json"
        path.write_text("{not json", encoding="utf-8")

        assert load_checkpoint(path) is None
        assert "Failed to load checkpoint" in caplog.text

    def test_clear(self, temp_dir, snapshot):
        path = save_checkpoint(temp_dir / "checkpoint.json", snapshot)

        assert clear_checkpoint(path) is True
        assert not path.exists()
        assert clear_checkpoint(path) is False
