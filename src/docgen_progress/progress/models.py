"""
Task models for progress tracking.

Task objects are owned by the TaskRegistry. Everything handed to observers
(events, display, snapshots) is a copy.
"""

from __future__ import annotations

import copy
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TaskStatus(str, Enum):
    """Status of a tracked task."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    INTERRUPTED = "interrupted"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.INTERRUPTED)


def clamp_progress(value: float, total: float) -> float:
    """Clamp a progress value into [0, total]. NaN counts as 0."""
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(value):
        return 0.0
    return max(0.0, min(value, float(total)))


@dataclass
class Task:
    """A unit of tracked work, optionally split into subtasks."""
    id: str
    name: str
    status: TaskStatus = TaskStatus.PENDING
    progress: float = 0.0
    total: float = 100.0
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    message: Optional[str] = None
    details: List[str] = field(default_factory=list)
    subtasks: List[Task] = field(default_factory=list)

    @property
    def percentage(self) -> float:
        """Completion in percent (0-100)."""
        if self.total <= 0:
            return 0.0
        return (self.progress / self.total) * 100

    @property
    def fraction(self) -> float:
        if self.total <= 0:
            return 0.0
        return self.progress / self.total

    def find_subtask(self, subtask_id: str) -> Optional[Task]:
        for subtask in self.subtasks:
            if subtask.id == subtask_id:
                return subtask
        return None

    def copy(self) -> Task:
        """Deep copy, safe to hand to observers."""
        return copy.deepcopy(self)
