"""
Tests for streaming.py - activity feed, ETA and file queue.
"""

import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from docgen_progress.progress import EventBus, EventKind, TaskEvent
from docgen_progress.progress.models import Task
from docgen_progress.streaming import ActivityStream, FileQueue, StreamKind


@pytest.fixture
def stream(monotonic):
    return ActivityStream(max_lines=3, activity_timeout=5.0, monotonic=monotonic)


class TestFeed:
    """Tests for the bounded activity feed."""

    def test_lines_bounded(self, stream):
        for i in range(5):
            stream.stream_output(f"line {i}")

        assert len(stream.lines) == 3
        assert stream.lines[-1].endswith("→ line 4")
        assert len(stream.history()) == 5

    def test_history_limit(self, stream):
        for i in range(ActivityStream.HISTORY_LIMIT + 20):
            stream.stream_output(str(i))
        assert len(stream.history()) == ActivityStream.HISTORY_LIMIT

    def test_set_max_lines_keeps_recent(self, stream):
        for i in range(3):
            stream.stream_output(f"line {i}")

        stream.set_max_lines(1)

        assert len(stream.lines) == 1
        assert stream.lines[0].endswith("line 2")

    def test_progress_event(self, stream):
        event = stream.stream_progress("Docs", 25, 50, "halfway")

        assert event.kind == StreamKind.PROGRESS
        assert event.message == "[Docs] 50% (25/50) halfway"
        assert event.details["percentage"] == 50

    def test_error_level(self, stream):
        event = stream.stream_error("boom")
        assert event.level == "error"
        assert event.message == "❌ boom"

    def test_on_event_callback(self, monotonic):
        seen = []
        stream = ActivityStream(monotonic=monotonic, on_event=seen.append)
        stream.stream_file("Reading", "a.py")

        assert [e.kind for e in seen] == [StreamKind.FILE]


class TestTiming:
    """Tests for elapsed, idle and ETA."""

    def test_idle_detection(self, stream, monotonic):
        stream.stream_output("x")
        monotonic.advance(6)

        assert stream.is_idle
        stream.stream_output("y")
        assert not stream.is_idle

    def test_eta_calculating_until_first_task(self, stream):
        assert stream.eta_seconds() is None
        assert stream.eta() == "Calculating..."

    def test_eta_from_average(self, monotonic):
        remaining = [2]
        stream = ActivityStream(remaining=lambda: remaining[0], monotonic=monotonic)

        stream.start_task_timing("a")
        monotonic.advance(20)
        stream.complete_task_timing("a")
        stream.start_task_timing("b")
        monotonic.advance(40)
        stream.complete_task_timing("b")

        assert stream.eta_seconds() == pytest.approx(60)
        assert stream.eta() == "1m 0s"

        remaining[0] = 0
        assert stream.eta() == "Almost done"

    def test_status_line(self, stream, monotonic):
        monotonic.advance(65)
        line = stream.status_line()

        assert "Elapsed: 1m 5s" in line
        assert "ETA: Calculating..." in line
        assert line.startswith("⚠️")

    def test_attach_to_bus(self, stream, monotonic):
        bus = EventBus()
        stream.attach(bus)
        task = Task(id="a", name="Scan")

        bus.publish(TaskEvent(EventKind.TASK_START, task))
        monotonic.advance(10)
        bus.publish(TaskEvent(EventKind.TASK_COMPLETE, task))

        assert stream._task_durations == {"a": 10}
        assert stream.lines[-1].endswith("⚡ Scan: completed")


class TestWorkUnitCallbacks:
    """Tests for agent tool narration."""

    def test_tool_calls_narrated(self, stream):
        callbacks = stream.work_unit_callbacks("Docs")

        callbacks.on_tool_call("Read", {"file_path": "src/app.py"})
        callbacks.on_tool_call("Grep", {"pattern": "TODO"})
        callbacks.on_tool_call("Write", {})

        messages = [e.message for e in stream.history()]
        assert messages == [
            "📄 Reading: src/app.py",
            '🔍 [Search] Pattern: "TODO" in project',
            "⚡ Tool: Write (3 calls)",
        ]

    def test_chunks(self, stream):
        callbacks = stream.work_unit_callbacks("Docs")
        callbacks.on_tool_call("Bash", {"command": "ls"})
        callbacks.on_chunk({"type": "tool_result"})

        assert stream.history()[-1].message == "→ Tool result from Bash"

    def test_progress_forwarded_as_fraction(self, stream):
        fractions = []
        callbacks = stream.work_unit_callbacks("Docs", on_progress=fractions.append)

        callbacks.on_progress(40)

        assert fractions == [0.4]
        assert stream.history()[-1].kind == StreamKind.PROGRESS


class TestFileQueue:
    """Tests for FileQueue"""

    def test_process_in_order(self, stream):
        queue = FileQueue(stream)
        queue.queue_files(["a.py", "b.py"])

        assert queue.process_next() == "a.py"
        queue.complete_file({"lines": 10})
        assert queue.current is None
        assert queue.process_next() == "b.py"
        assert queue.process_next() is None

    def test_progress_counts_current(self, stream):
        queue = FileQueue(stream)
        queue.queue_files(["a.py", "b.py", "c.py", "d.py"])
        queue.process_next()

        assert queue.progress() == {"processed": 1, "total": 4, "percentage": 25}

    def test_empty_progress(self, stream):
        assert FileQueue(stream).progress() == {"processed": 0, "total": 0, "percentage": 0}
