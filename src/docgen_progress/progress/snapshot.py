"""
Snapshot codec: export and restore of registry state.

The wire shape handed to a persistence layer is

    {version, tasks, currentTask, startTime, interrupted, logs}

with each task as {id, name, status, progress, total, startTime, endTime,
message, details, subtasks}. Snapshots written before versioning carry no
"version" key and are read as version 1.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .errors import MalformedSnapshotError
from .models import Task, TaskStatus, clamp_progress
from .registry import TaskRegistry

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 2
LEGACY_VERSION = 1

_LEGACY_STATUSES = {
    "in-progress": TaskStatus.RUNNING.value,
    "in_progress": TaskStatus.RUNNING.value,
}


class TaskRecord(BaseModel):
    """Immutable serialized form of a Task."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str = ""
    status: TaskStatus = TaskStatus.PENDING
    progress: float = 0.0
    total: float = Field(default=100.0, gt=0)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    message: Optional[str] = None
    details: Tuple[str, ...] = ()
    subtasks: Tuple[TaskRecord, ...] = ()

    @model_validator(mode="before")
    @classmethod
    def _legacy_id(cls, data: Any) -> Any:
        # Old snapshots keyed tasks by name only
        if isinstance(data, Mapping) and "id" not in data and data.get("name"):
            data = dict(data)
            data["id"] = data["name"]
        return data

    @field_validator("status", mode="before")
    @classmethod
    def _legacy_status(cls, value: Any) -> Any:
        if isinstance(value, str):
            return _LEGACY_STATUSES.get(value, value)
        return value

    @classmethod
    def from_task(cls, task: Task) -> TaskRecord:
        return cls(
            id=task.id,
            name=task.name,
            status=task.status,
            progress=task.progress,
            total=task.total,
            start_time=task.start_time,
            end_time=task.end_time,
            message=task.message,
            details=tuple(task.details),
            subtasks=tuple(cls.from_task(s) for s in task.subtasks),
        )

    def to_task(self) -> Task:
        """Rebuild a Task. Running tasks come back as pending."""
        status = self.status
        if status == TaskStatus.RUNNING:
            status = TaskStatus.PENDING
        return Task(
            id=self.id,
            name=self.name or self.id,
            status=status,
            progress=clamp_progress(self.progress, self.total),
            total=self.total,
            start_time=self.start_time,
            end_time=self.end_time,
            message=self.message,
            details=list(self.details),
            subtasks=[s.to_task() for s in self.subtasks],
        )


class ProgressSnapshot(BaseModel):
    """Immutable point-in-time export of a run."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    version: int = SNAPSHOT_VERSION
    tasks: Tuple[TaskRecord, ...]
    current_task: Optional[str] = None
    start_time: Optional[datetime] = None
    interrupted: bool = False
    logs: Tuple[str, ...] = ()

    @field_validator("version")
    @classmethod
    def _supported_version(cls, value: int) -> int:
        if value < LEGACY_VERSION or value > SNAPSHOT_VERSION:
            raise ValueError(f"unsupported snapshot version {value}")
        return value

    def find(self, task_id: str) -> Optional[TaskRecord]:
        for record in self.tasks:
            if record.id == task_id:
                return record
        return None


class SnapshotCodec:
    """Builds, serializes and restores ProgressSnapshots."""

    def snapshot(
        self,
        registry: TaskRegistry,
        interrupted: bool = False,
        logs: Iterable[str] = (),
        start_time: Optional[datetime] = None,
    ) -> ProgressSnapshot:
        return ProgressSnapshot(
            tasks=tuple(TaskRecord.from_task(t) for t in registry.tasks),
            current_task=registry.current_id,
            start_time=registry.run_started_at or start_time,
            interrupted=interrupted,
            logs=tuple(logs),
        )

    def encode(self, snapshot: ProgressSnapshot) -> dict:
        """Serialize to the JSON-compatible wire shape."""
        return snapshot.model_dump(mode="json", by_alias=True)

    def decode(self, data: Union[ProgressSnapshot, Mapping[str, Any]]) -> ProgressSnapshot:
        """
        Parse wire data.

        Raises:
            MalformedSnapshotError: not a mapping, no "tasks", bad fields or
                unsupported version
        """
        if isinstance(data, ProgressSnapshot):
            return data
        if not isinstance(data, Mapping):
            raise MalformedSnapshotError(f"Snapshot must be a mapping, got {type(data).__name__}")
        if "tasks" not in data:
            raise MalformedSnapshotError("Snapshot has no 'tasks' field")
        if "version" not in data:
            data = {**data, "version": LEGACY_VERSION}
        try:
            return ProgressSnapshot.model_validate(data)
        except ValidationError as e:
            raise MalformedSnapshotError(f"Invalid snapshot: {e}") from e

    def restore(
        self,
        registry: TaskRegistry,
        data: Union[ProgressSnapshot, Mapping[str, Any], None],
    ) -> int:
        """
        Load snapshot tasks into the registry.

        Running tasks are downgraded to pending since their work unit is
        gone. Malformed input is logged and nothing is restored.

        Returns:
            Number of top-level tasks restored.
        """
        try:
            snapshot = self.decode(data)
        except MalformedSnapshotError as e:
            logger.warning(f"Nothing to restore: {e}")
            return 0

        for record in snapshot.tasks:
            registry.put(record.to_task())

        if registry.run_started_at is None:
            registry.run_started_at = snapshot.start_time
        return len(snapshot.tasks)
