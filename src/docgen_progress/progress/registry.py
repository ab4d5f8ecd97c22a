"""
Task Registry
=============

Owns every task of a run and enforces the lifecycle state machine:

    pending --start--> running --update*--> running
    running --complete--> completed
    running --fail--> failed
    running --interrupt--> interrupted

The registry does no rendering and publishes no events; the Reporter wraps
it for that. Unknown ids are logged and ignored.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Literal, Optional, Set, Tuple

from .aggregator import aggregate_progress, overall_progress
from .errors import DuplicateTaskError, UnknownTaskError
from .models import Task, TaskStatus, clamp_progress, utc_now

logger = logging.getLogger(__name__)

DuplicatePolicy = Literal["error", "reset"]
UnknownTaskPolicy = Literal["ignore", "auto_register"]


class TaskRegistry:
    """
    Registry of tasks and their states.

    Usage:
        registry = TaskRegistry()
        registry.register("scan", "Scan project")
        registry.register("write", "Write docs")

        registry.start("scan")
        registry.update("scan", 40, "Reading files")
        completed, started = registry.complete("scan")   # starts "write"
    """

    def __init__(
        self,
        duplicate_policy: DuplicatePolicy = "error",
        unknown_task_policy: UnknownTaskPolicy = "ignore",
        auto_complete_on_full: bool = False,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.duplicate_policy = duplicate_policy
        self.unknown_task_policy = unknown_task_policy
        self.auto_complete_on_full = auto_complete_on_full
        self._clock = clock

        self._tasks: Dict[str, Task] = {}
        self._current_id: Optional[str] = None
        # Interrupted tasks carried over by restore may be started again
        self._resumable: Set[str] = set()
        self.run_started_at: Optional[datetime] = None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def __contains__(self, task_id: str) -> bool:
        return task_id in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def get(self, task_id: str) -> Optional[Task]:
        return self._tasks.get(task_id)

    def _require(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise UnknownTaskError(task_id)
        return task

    @property
    def tasks(self) -> List[Task]:
        """Top-level tasks in registration order."""
        return list(self._tasks.values())

    @property
    def current_id(self) -> Optional[str]:
        return self._current_id

    @property
    def current(self) -> Optional[Task]:
        if self._current_id is None:
            return None
        return self._tasks.get(self._current_id)

    def pending(self) -> List[Task]:
        return [t for t in self._tasks.values() if t.status == TaskStatus.PENDING]

    def next_pending(self) -> Optional[Task]:
        for task in self._tasks.values():
            if task.status == TaskStatus.PENDING:
                return task
        return None

    def overall_progress(self) -> Tuple[int, int, int]:
        return overall_progress(self._tasks.values())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def register(self, task_id: str, name: str, total: float = 100) -> Task:
        """
        Register a new pending task.

        Raises:
            DuplicateTaskError: id already registered and policy is "error"
            ValueError: total is not positive
        """
        if total is None or total <= 0:
            raise ValueError(f"Task total must be positive, got {total!r}")

        if task_id in self._tasks:
            if self.duplicate_policy == "error":
                raise DuplicateTaskError(task_id)
            logger.debug(f"Resetting duplicate task: {task_id}")
            if self._current_id == task_id:
                self._current_id = None
            self._resumable.discard(task_id)

        task = Task(id=task_id, name=name, total=float(total))
        self._tasks[task_id] = task
        logger.debug(f"Task registered: {name} ({task_id})")
        return task

    def start(self, task_id: str, message: Optional[str] = None) -> Optional[Task]:
        """Mark a task running and make it current."""
        try:
            task = self._require(task_id)
        except UnknownTaskError as e:
            logger.warning(str(e))
            return None

        resumable = task.status == TaskStatus.INTERRUPTED and task_id in self._resumable
        if task.status != TaskStatus.PENDING and not resumable:
            logger.warning(f"Cannot start task {task_id} in status {task.status.value}")
            return None

        now = self._clock()
        task.status = TaskStatus.RUNNING
        task.start_time = now
        task.end_time = None
        if message is not None:
            task.message = message
        self._resumable.discard(task_id)
        self._current_id = task_id

        if self.run_started_at is None:
            self.run_started_at = now
        return task

    def update(
        self,
        task_id: str,
        progress: float,
        message: Optional[str] = None,
        details: Optional[Iterable[str]] = None,
    ) -> Optional[Task]:
        """
        Set a task's progress.

        Progress is clamped into [0, total]. Reaching total does not complete
        the task unless auto_complete_on_full is set.
        """
        task = self._tasks.get(task_id)
        if task is None:
            if self.unknown_task_policy != "auto_register":
                logger.warning(f"Unknown task: {task_id}")
                return None
            self.register(task_id, task_id)
            task = self.start(task_id)

        if task.status.is_terminal:
            logger.warning(f"Ignoring update for {task.status.value} task: {task_id}")
            return None

        task.progress = clamp_progress(progress, task.total)
        if message is not None:
            task.message = message
        task.details = list(details or [])

        if (
            self.auto_complete_on_full
            and task.status == TaskStatus.RUNNING
            and task.progress >= task.total
        ):
            self._finish(task, TaskStatus.COMPLETED)
        return task

    def complete(
        self, task_id: str, message: Optional[str] = None, advance: bool = True
    ) -> Tuple[Optional[Task], Optional[Task]]:
        """
        Complete a task and auto-start the next pending one.

        advance=False skips the auto-start (used once a run is interrupted).

        Returns:
            (completed_task, auto_started_task)
        """
        try:
            task = self._require(task_id)
        except UnknownTaskError as e:
            logger.warning(str(e))
            return None, None
        if task.status.is_terminal:
            logger.warning(f"Cannot complete {task.status.value} task: {task_id}")
            return None, None

        task.progress = task.total
        task.message = message or "Completed"
        self._finish(task, TaskStatus.COMPLETED)

        started = None
        next_task = self.next_pending() if advance else None
        if next_task is not None:
            started = self.start(next_task.id)
        return task, started

    def fail(
        self,
        task_id: str,
        error: str,
        details: Optional[Iterable[str]] = None,
    ) -> Optional[Task]:
        """Mark a task failed. Never advances to another task."""
        try:
            task = self._require(task_id)
        except UnknownTaskError as e:
            logger.warning(str(e))
            return None
        if task.status.is_terminal:
            logger.warning(f"Cannot fail {task.status.value} task: {task_id}")
            return None

        task.message = error
        task.details = list(details or [])
        self._finish(task, TaskStatus.FAILED)
        return task

    def interrupt_current(self) -> Optional[Task]:
        """
        Mark the current running task interrupted, keeping its progress.

        The task stays current so checkpoints record where the run stopped.
        """
        task = self.current
        if task is None or task.status != TaskStatus.RUNNING:
            return None
        self._finish(task, TaskStatus.INTERRUPTED)
        return task

    def _finish(self, task: Task, status: TaskStatus) -> None:
        task.status = status
        task.end_time = self._clock()
        if self._current_id == task.id and status != TaskStatus.INTERRUPTED:
            self._current_id = None

    # ------------------------------------------------------------------
    # Subtasks
    # ------------------------------------------------------------------

    def add_subtask(
        self, parent_id: str, subtask_id: str, name: str, total: float = 100
    ) -> Optional[Task]:
        parent = self._tasks.get(parent_id)
        if parent is None:
            logger.warning(f"Unknown parent task: {parent_id}")
            return None

        subtask = Task(id=subtask_id, name=name, total=float(total))
        parent.subtasks.append(subtask)
        logger.debug(f"  -> {name}")
        return subtask

    def update_subtask(
        self,
        parent_id: str,
        subtask_id: str,
        progress: float,
        message: Optional[str] = None,
    ) -> Optional[Task]:
        """
        Update a subtask and roll its progress up into the parent.

        Returns the parent task, or None when either id is unknown or the
        parent already finished. Nothing is changed in that case.
        """
        parent, subtask = self._lookup_subtask(parent_id, subtask_id)
        if subtask is None:
            return None

        if subtask.status == TaskStatus.PENDING:
            subtask.status = TaskStatus.RUNNING
            subtask.start_time = self._clock()
        subtask.progress = clamp_progress(progress, subtask.total)
        if message is not None:
            subtask.message = message
        return self._roll_up(parent, subtask, subtask.message)

    def complete_subtask(
        self, parent_id: str, subtask_id: str, message: Optional[str] = None
    ) -> Optional[Task]:
        parent, subtask = self._lookup_subtask(parent_id, subtask_id)
        if subtask is None:
            return None

        subtask.progress = subtask.total
        subtask.message = message or "Completed"
        subtask.status = TaskStatus.COMPLETED
        subtask.end_time = self._clock()
        return self._roll_up(parent, subtask, subtask.message)

    def _lookup_subtask(
        self, parent_id: str, subtask_id: str
    ) -> Tuple[Optional[Task], Optional[Task]]:
        parent = self._tasks.get(parent_id)
        if parent is None:
            logger.warning(f"Unknown parent task: {parent_id}")
            return None, None
        if parent.status.is_terminal:
            logger.warning(f"Ignoring subtask change for {parent.status.value} task: {parent_id}")
            return parent, None
        subtask = parent.find_subtask(subtask_id)
        if subtask is None:
            logger.warning(f"Unknown subtask {subtask_id} of {parent_id}")
            return parent, None
        return parent, subtask

    def _roll_up(self, parent: Task, subtask: Task, message: Optional[str]) -> Optional[Task]:
        return self.update(
            parent.id,
            aggregate_progress(parent),
            f"{subtask.name}: {message or ''}",
        )

    # ------------------------------------------------------------------
    # Restore support
    # ------------------------------------------------------------------

    def put(self, task: Task) -> None:
        """Insert a fully built task, replacing any task with the same id."""
        self._tasks[task.id] = task
        if self._current_id == task.id and task.status != TaskStatus.RUNNING:
            self._current_id = None
        if task.status == TaskStatus.INTERRUPTED:
            self._resumable.add(task.id)
        else:
            self._resumable.discard(task.id)

    def clear(self) -> None:
        self._tasks.clear()
        self._resumable.clear()
        self._current_id = None
        self.run_started_at = None
