"""
Activity stream for long-running work units.

Keeps a bounded, timestamped feed of what the agent is doing (files read,
searches, tool calls, output), plus timing used for ETA and idle detection.

Использование:
    stream = ActivityStream(remaining=lambda: len(reporter.registry.pending()))
    callbacks = stream.work_unit_callbacks("Write README")
    callbacks.on_tool_call("Read", {"file_path": "src/app.py"})
    callbacks.on_progress(40)
    print(stream.status_line())
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional, Set

from .progress.events import Event, EventBus, EventKind
from .progress.models import utc_now
from .progress.summary import format_duration

PULSE_CHARS = ["⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏"]


class StreamKind(str, Enum):
    """Kinds of activity."""
    FILE = "file"
    TASK = "task"
    ANALYSIS = "analysis"
    OUTPUT = "output"
    PROGRESS = "progress"
    ERROR = "error"


@dataclass
class StreamEvent:
    """One line of activity."""
    kind: StreamKind
    message: str
    timestamp: datetime = field(default_factory=utc_now)
    level: str = "info"  # debug, info, warning, error
    details: Optional[Dict[str, Any]] = None

    def render(self) -> str:
        return f"[{self.timestamp:%H:%M:%S}] {self.message}"


@dataclass
class WorkUnitCallbacks:
    """Callbacks handed to an agent/work unit."""
    on_tool_call: Callable[[str, Dict[str, Any]], None]
    on_chunk: Callable[[Dict[str, Any]], None]
    on_progress: Callable[[float], None]


class ActivityStream:
    """Bounded activity feed with ETA and idle detection."""

    HISTORY_LIMIT = 100

    def __init__(
        self,
        max_lines: int = 10,
        activity_timeout: float = 5.0,
        remaining: Optional[Callable[[], int]] = None,
        monotonic: Callable[[], float] = time.monotonic,
        on_event: Optional[Callable[[StreamEvent], None]] = None,
    ):
        self.max_lines = max_lines
        self.activity_timeout = activity_timeout
        self._remaining = remaining
        self._monotonic = monotonic
        self._on_event = on_event

        self._history: Deque[StreamEvent] = deque(maxlen=self.HISTORY_LIMIT)
        self._lines: Deque[str] = deque(maxlen=max_lines)
        self._started = monotonic()
        self._last_activity = self._started
        self._task_started: Dict[str, float] = {}
        self._task_durations: Dict[str, float] = {}
        self._pulse = 0

    # ------------------------------------------------------------------
    # Feed
    # ------------------------------------------------------------------

    def add(self, event: StreamEvent) -> StreamEvent:
        self._history.append(event)
        self._lines.append(event.render())
        self._last_activity = self._monotonic()
        if self._on_event is not None:
            self._on_event(event)
        return event

    def stream_file(self, operation: str, path: str, details: Optional[Dict[str, Any]] = None) -> StreamEvent:
        return self.add(StreamEvent(StreamKind.FILE, f"📄 {operation}: {path}", details=details))

    def stream_task(self, task: str, status: str, details: Optional[Dict[str, Any]] = None) -> StreamEvent:
        return self.add(StreamEvent(StreamKind.TASK, f"⚡ {task}: {status}", details=details))

    def stream_analysis(self, component: str, action: str, details: Optional[Dict[str, Any]] = None) -> StreamEvent:
        return self.add(
            StreamEvent(StreamKind.ANALYSIS, f"🔍 [{component}] {action}", level="debug", details=details)
        )

    def stream_output(self, message: str, details: Optional[Dict[str, Any]] = None) -> StreamEvent:
        return self.add(StreamEvent(StreamKind.OUTPUT, f"→ {message}", details=details))

    def stream_progress(self, task: str, current: float, total: float, detail: str = "") -> StreamEvent:
        percentage = round((current / total) * 100) if total else 0
        message = f"[{task}] {percentage}% ({current:g}/{total:g}) {detail}".rstrip()
        return self.add(
            StreamEvent(
                StreamKind.PROGRESS,
                message,
                details={"current": current, "total": total, "percentage": percentage},
            )
        )

    def stream_error(self, error: str, details: Optional[Dict[str, Any]] = None) -> StreamEvent:
        return self.add(StreamEvent(StreamKind.ERROR, f"❌ {error}", level="error", details=details))

    def history(self) -> List[StreamEvent]:
        return list(self._history)

    @property
    def lines(self) -> List[str]:
        """Most recent rendered lines, oldest first."""
        return list(self._lines)

    def set_max_lines(self, lines: int) -> None:
        self.max_lines = lines
        self._lines = deque(self._lines, maxlen=lines)

    # ------------------------------------------------------------------
    # Timing
    # ------------------------------------------------------------------

    def start_task_timing(self, task_id: str) -> None:
        self._task_started[task_id] = self._monotonic()

    def complete_task_timing(self, task_id: str) -> None:
        started = self._task_started.pop(task_id, None)
        if started is not None:
            self._task_durations[task_id] = self._monotonic() - started

    def attach(self, bus: EventBus) -> Callable[[], None]:
        """Time tasks from reporter lifecycle events."""
        def _on_event(event: Event) -> None:
            if event.kind == EventKind.TASK_START:
                self.start_task_timing(event.task.id)
                self.stream_task(event.task.name, "started")
            elif event.kind == EventKind.TASK_COMPLETE:
                self.complete_task_timing(event.task.id)
                self.stream_task(event.task.name, "completed")
            elif event.kind == EventKind.TASK_FAIL:
                self._task_started.pop(event.task.id, None)
                self.stream_error(f"{event.task.name}: {event.task.message or 'failed'}")

        return bus.subscribe(
            _on_event,
            kinds=[EventKind.TASK_START, EventKind.TASK_COMPLETE, EventKind.TASK_FAIL],
        )

    def elapsed(self) -> float:
        return self._monotonic() - self._started

    def idle_seconds(self) -> float:
        return self._monotonic() - self._last_activity

    @property
    def is_idle(self) -> bool:
        return self.idle_seconds() > self.activity_timeout

    def eta_seconds(self) -> Optional[float]:
        """Mean task duration times remaining tasks; None until a task finishes."""
        if not self._task_durations:
            return None
        remaining = self._remaining() if self._remaining else 0
        average = sum(self._task_durations.values()) / len(self._task_durations)
        return average * remaining

    def eta(self) -> str:
        seconds = self.eta_seconds()
        if seconds is None:
            return "Calculating..."
        if seconds == 0:
            return "Almost done"
        return format_duration(seconds)

    def status_line(self) -> str:
        self._pulse = (self._pulse + 1) % len(PULSE_CHARS)
        indicator = "⚠️" if self.is_idle else PULSE_CHARS[self._pulse]
        return (
            f"{indicator} Elapsed: {format_duration(self.elapsed())} | ETA: {self.eta()} "
            f"| Last Activity: {round(self.idle_seconds())}s ago"
        )

    # ------------------------------------------------------------------
    # Work-unit adapter
    # ------------------------------------------------------------------

    def work_unit_callbacks(
        self,
        task_name: str,
        on_progress: Optional[Callable[[float], None]] = None,
    ) -> WorkUnitCallbacks:
        """
        Callbacks that narrate an agent's tool usage into the stream.

        on_progress, if given, also receives progress as a fraction in [0, 1]
        (the agent itself reports 0-100).
        """
        state = {"tool_calls": 0, "last_tool": ""}

        def _on_tool_call(tool: str, args: Dict[str, Any]) -> None:
            state["tool_calls"] += 1
            state["last_tool"] = tool
            if tool == "Read":
                self.stream_file("Reading", args.get("file_path") or args.get("path") or "unknown")
            elif tool == "Grep":
                self.stream_analysis("Search", f'Pattern: "{args.get("pattern")}" in {args.get("path") or "project"}')
            elif tool == "Glob":
                self.stream_analysis("Scan", f"Finding files: {args.get('pattern')}")
            elif tool == "LS":
                self.stream_file("Listing", args.get("path") or "directory")
            elif tool == "Bash":
                self.stream_task("Command", args.get("command") or "executing")
            else:
                self.stream_task("Tool", f"{tool} ({state['tool_calls']} calls)")

        def _on_chunk(chunk: Dict[str, Any]) -> None:
            kind = chunk.get("type")
            if kind == "tool_result":
                self.stream_output(f"Tool result from {state['last_tool']}")
            elif kind == "thinking":
                self.stream_analysis("AI", "Processing information...")

        def _on_progress(progress: float) -> None:
            self.stream_progress(task_name, progress, 100, "AI analysis in progress")
            if on_progress is not None:
                on_progress(progress / 100)

        return WorkUnitCallbacks(on_tool_call=_on_tool_call, on_chunk=_on_chunk, on_progress=_on_progress)


class FileQueue:
    """Tracks a batch of files processed one at a time."""

    def __init__(self, stream: ActivityStream):
        self.stream = stream
        self._queue: Deque[str] = deque()
        self._processed: Set[str] = set()
        self.current: Optional[str] = None

    def queue_files(self, files: List[str]) -> None:
        self._queue.extend(files)
        self.stream.stream_task("Queue", f"{len(files)} files added to queue")

    def process_next(self) -> Optional[str]:
        if not self._queue:
            return None
        self.current = self._queue.popleft()
        self._processed.add(self.current)
        self.stream.stream_file(
            "Processing",
            self.current,
            {"remaining": len(self._queue), "processed": len(self._processed)},
        )
        return self.current

    def complete_file(self, results: Optional[Dict[str, Any]] = None) -> None:
        if self.current:
            self.stream.stream_file("Completed", self.current, results)
            self.current = None

    def progress(self) -> Dict[str, int]:
        """Processed/total counts. A file being processed already counts as processed."""
        total = len(self._processed) + len(self._queue)
        processed = len(self._processed)
        percentage = round((processed / total) * 100) if total else 0
        return {"processed": processed, "total": total, "percentage": percentage}
