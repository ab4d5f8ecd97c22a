"""
Progress Tracking Core
======================

Task lifecycle tracking with interrupt-safe checkpoints:
- Task registry with a monotone status state machine
- Subtask progress aggregation
- Ordered in-process lifecycle events
- Interrupt handling with escalation to force-quit
- Versioned snapshots for checkpoint/restore
- End-of-run summaries
"""

from .aggregator import aggregate_fraction, aggregate_progress, overall_progress, subtask_fraction
from .errors import (
    DuplicateTaskError,
    ForceQuit,
    MalformedSnapshotError,
    ProgressError,
    UnknownTaskError,
    WorkUnitFailure,
)
from .events import (
    Event,
    EventBus,
    EventKind,
    InterruptEvent,
    SaveProgressEvent,
    TaskEvent,
)
from .interrupt import InterruptController, InterruptState
from .models import Task, TaskStatus, clamp_progress
from .registry import TaskRegistry
from .reporter import Reporter
from .snapshot import SNAPSHOT_VERSION, ProgressSnapshot, SnapshotCodec, TaskRecord
from .summary import SummaryReport, format_duration

__all__ = [
    "Task",
    "TaskStatus",
    "clamp_progress",
    "TaskRegistry",
    "aggregate_fraction",
    "aggregate_progress",
    "overall_progress",
    "subtask_fraction",
    "Event",
    "EventBus",
    "EventKind",
    "InterruptEvent",
    "SaveProgressEvent",
    "TaskEvent",
    "InterruptController",
    "InterruptState",
    "SNAPSHOT_VERSION",
    "ProgressSnapshot",
    "SnapshotCodec",
    "TaskRecord",
    "Reporter",
    "SummaryReport",
    "format_duration",
    "ProgressError",
    "DuplicateTaskError",
    "UnknownTaskError",
    "MalformedSnapshotError",
    "WorkUnitFailure",
    "ForceQuit",
]
