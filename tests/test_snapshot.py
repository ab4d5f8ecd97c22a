"""
Tests for progress/snapshot.py - export and restore.
"""

import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from docgen_progress.progress.errors import MalformedSnapshotError
from docgen_progress.progress.models import TaskStatus
from docgen_progress.progress.registry import TaskRegistry
from docgen_progress.progress.snapshot import SNAPSHOT_VERSION, ProgressSnapshot, SnapshotCodec


@pytest.fixture
def codec():
    return SnapshotCodec()


@pytest.fixture
def run(clock):
    """Registry with A completed, B running at 50, C failed."""
    reg = TaskRegistry(clock=clock)
    reg.register("a", "Task A")
    reg.register("b", "Task B")
    reg.register("c", "Task C")

    reg.start("c")
    reg.fail("c", "boom")
    reg.start("a")
    reg.complete("a")
    reg.update("b", 50, "working")
    return reg


class TestExport:
    """Tests for building and encoding snapshots."""

    def test_snapshot_fields(self, run, codec, clock):
        snapshot = codec.snapshot(run, interrupted=False, logs=["line"])

        assert snapshot.version == SNAPSHOT_VERSION
        assert [r.id for r in snapshot.tasks] == ["a", "b", "c"]
        assert snapshot.current_task == "b"
        assert snapshot.start_time == clock.now
        assert snapshot.logs == ("line",)

    def test_snapshot_is_immutable(self, run, codec):
        snapshot = codec.snapshot(run)
        with pytest.raises(Exception):
            snapshot.interrupted = True

    def test_snapshot_detached_from_registry(self, run, codec):
        """Test later registry changes do not leak into an earlier snapshot."""
        snapshot = codec.snapshot(run)
        run.update("b", 90)

        assert snapshot.find("b").progress == 50

    def test_encode_uses_camel_case(self, run, codec):
        data = codec.encode(codec.snapshot(run, interrupted=True))

        assert set(data) == {"version", "tasks", "currentTask", "startTime", "interrupted", "logs"}
        task = data["tasks"][1]
        assert task["status"] == "running"
        assert "startTime" in task and "endTime" in task
        assert task["subtasks"] == []


class TestRestore:
    """Tests for loading snapshots into a registry."""

    def test_round_trip(self, run, codec, clock):
        """Test completed stays completed, running comes back pending, failed stays failed."""
        data = codec.encode(codec.snapshot(run))
        fresh = TaskRegistry(clock=clock)

        count = codec.restore(fresh, data)

        assert count == 3
        assert fresh.get("a").status == TaskStatus.COMPLETED
        assert fresh.get("b").status == TaskStatus.PENDING
        assert fresh.get("b").progress == 50
        assert fresh.get("c").status == TaskStatus.FAILED
        assert fresh.get("c").message == "boom"
        assert fresh.current_id is None
        assert fresh.run_started_at == clock.now

    def test_restored_pending_restarts(self, run, codec):
        fresh = TaskRegistry()
        codec.restore(fresh, codec.encode(codec.snapshot(run)))

        assert fresh.start("b").status == TaskStatus.RUNNING

    def test_interrupted_task_resumable(self, run, codec):
        run.interrupt_current()
        fresh = TaskRegistry()
        codec.restore(fresh, codec.encode(codec.snapshot(run, interrupted=True)))

        task = fresh.start("b")

        assert task.status == TaskStatus.RUNNING
        assert task.progress == 50

    def test_restore_replaces_same_id(self, codec):
        reg = TaskRegistry()
        reg.register("a", "Old name")

        codec.restore(reg, {"tasks": [{"id": "a", "name": "New name", "status": "completed"}]})

        assert len(reg) == 1
        assert reg.get("a").name == "New name"

    def test_subtasks_restored(self, codec):
        reg = TaskRegistry()
        reg.register("p", "Parent")
        reg.start("p")
        reg.add_subtask("p", "s1", "Sub")
        reg.update_subtask("p", "s1", 40)
        data = codec.encode(codec.snapshot(reg))

        fresh = TaskRegistry()
        codec.restore(fresh, data)

        sub = fresh.get("p").subtasks[0]
        assert sub.status == TaskStatus.PENDING
        assert sub.progress == 40

    def test_missing_tasks_is_noop(self, codec, caplog):
        reg = TaskRegistry()

        assert codec.restore(reg, {"currentTask": "a"}) == 0
        assert len(reg) == 0
        assert "no 'tasks' field" in caplog.text

    @pytest.mark.parametrize("data", [None, "garbage", 42, ["tasks"]])
    def test_not_a_mapping(self, codec, data):
        assert codec.restore(TaskRegistry(), data) == 0

    def test_unsupported_version(self, codec):
        with pytest.raises(MalformedSnapshotError):
            codec.decode({"version": 99, "tasks": []})

    def test_accepts_snapshot_object(self, run, codec):
        snapshot = codec.snapshot(run)
        assert codec.decode(snapshot) is snapshot


class TestLegacy:
    """Tests for snapshots written before versioning."""

    def test_missing_version_is_v1(self, codec):
        snapshot = codec.decode({"tasks": []})
        assert snapshot.version == 1

    def test_legacy_status_and_id(self, codec):
        """Test old in-progress status and name-only tasks load."""
        data = {
            "tasks": [
                {"name": "scan", "status": "in-progress", "progress": 30},
                {"name": "write", "status": "completed", "progress": 100},
            ],
            "currentTask": "scan",
        }
        reg = TaskRegistry()

        assert codec.restore(reg, data) == 2
        assert reg.get("scan").status == TaskStatus.PENDING
        assert reg.get("scan").progress == 30
        assert reg.get("write").status == TaskStatus.COMPLETED

    def test_progress_clamped_on_restore(self, codec):
        reg = TaskRegistry()
        codec.restore(reg, {"tasks": [{"id": "a", "name": "A", "progress": 500, "total": 100}]})

        assert reg.get("a").progress == 100


def test_snapshot_model_defaults():
    snapshot = ProgressSnapshot(tasks=())
    assert snapshot.version == SNAPSHOT_VERSION
    assert snapshot.interrupted is False
