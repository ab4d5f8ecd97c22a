"""
Progress Reporter
=================

Public task-lifecycle API. Wraps the TaskRegistry, publishes lifecycle events
on the EventBus, drives the Display, and turns interrupts into checkpoints.

Usage:
    reporter = Reporter(display=RichDisplay())
    reporter.register_task("scan", "Scan project")
    reporter.register_task("docs", "Write documentation")

    reporter.start_task("scan")
    reporter.update_task("scan", 50, "Reading sources")
    reporter.complete_task("scan")          # auto-starts "docs"

    reporter.show_summary()
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Iterable, Iterator, List, Mapping, Optional, Tuple, TypeVar, Union

from ..config import ReporterConfig
from ..display import Display, NullDisplay
from .errors import MalformedSnapshotError, WorkUnitFailure
from .events import EventBus, EventKind, InterruptEvent, SaveProgressEvent, TaskEvent
from .interrupt import InterruptController
from .models import Task, TaskStatus, utc_now
from .registry import TaskRegistry
from .snapshot import ProgressSnapshot, SnapshotCodec
from .summary import SummaryReport

logger = logging.getLogger(__name__)

T = TypeVar("T")

ProgressCallback = Callable[[float], None]


class Reporter:
    """Orchestrates task tracking, events, display and interrupts."""

    def __init__(
        self,
        display: Optional[Display] = None,
        config: Optional[ReporterConfig] = None,
        bus: Optional[EventBus] = None,
        interrupts: Optional[InterruptController] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config or ReporterConfig()
        self.display: Display = display or NullDisplay()
        self.bus = bus or EventBus()
        self.interrupts = interrupts or InterruptController(
            debounce_seconds=self.config.interrupt_debounce_seconds,
            exit_code=self.config.force_quit_exit_code,
            hard_exit=self.config.hard_force_quit,
        )
        self.registry = TaskRegistry(
            duplicate_policy=self.config.duplicate_policy,
            unknown_task_policy=self.config.unknown_task_policy,
            auto_complete_on_full=self.config.auto_complete_on_full,
            clock=clock,
        )
        self.codec = SnapshotCodec()
        self._clock = clock
        self.created_at = clock()
        self._logs: List[str] = []

        # Interrupts arriving mid-call are applied when the call returns
        self._depth = 0
        self._interrupt_pending: Optional[str] = None
        self.interrupts.bind(on_interrupt=self._on_interrupt, on_force_quit=self._on_force_quit)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def is_interrupted(self) -> bool:
        return self.interrupts.is_interrupted

    @property
    def current_task(self) -> Optional[Task]:
        task = self.registry.current
        return task.copy() if task else None

    @property
    def logs(self) -> Tuple[str, ...]:
        return tuple(self._logs)

    def get_task(self, task_id: str) -> Optional[Task]:
        task = self.registry.get(task_id)
        return task.copy() if task else None

    def tasks(self) -> List[Task]:
        return [t.copy() for t in self.registry.tasks]

    def overall_progress(self) -> Tuple[int, int, int]:
        """(completed, total, percentage) over top-level tasks."""
        return self.registry.overall_progress()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @contextmanager
    def _mutation(self) -> Iterator[None]:
        self._depth += 1
        try:
            yield
        finally:
            self._depth -= 1
            if self._depth == 0 and self._interrupt_pending is not None:
                source, self._interrupt_pending = self._interrupt_pending, None
                self._apply_interrupt(source)

    def register_task(self, task_id: str, name: str, total: float = 100) -> Task:
        with self._mutation():
            task = self.registry.register(task_id, name, total)
            self.display.log(f"Task registered: {name}", "debug")
            return task.copy()

    def start_task(self, task_id: str, message: Optional[str] = None) -> Optional[Task]:
        with self._mutation():
            task = self.registry.start(task_id, message)
            if task is None:
                self.display.log(f"Unknown or unstartable task: {task_id}", "warning")
                return None
            self._announce_start(task)
            return task.copy()

    def _announce_start(self, task: Task) -> None:
        self.display.create_progress_bar(task.id, task.name, task.total)
        self.display.log(f"Started: {task.name}", "info")
        self._record(task)
        self.bus.publish(TaskEvent(EventKind.TASK_START, task.copy()))

    def update_task(
        self,
        task_id: str,
        progress: float,
        message: Optional[str] = None,
        details: Optional[Iterable[str]] = None,
    ) -> Optional[Task]:
        with self._mutation():
            known = task_id in self.registry
            task = self.registry.update(task_id, progress, message, details)
            if task is None:
                return None
            if not known:
                self._announce_start(task)

            if task.status == TaskStatus.COMPLETED:
                self._announce_complete(task, self.registry.next_pending())
                return task.copy()

            self.display.update_progress_bar(task.id, task.progress, message)
            for detail in task.details:
                self.display.log(f"  {detail}", "debug")
            self._record(task)
            self.bus.publish(TaskEvent(EventKind.TASK_UPDATE, task.copy()))
            return task.copy()

    def complete_task(self, task_id: str, message: Optional[str] = None) -> Optional[Task]:
        with self._mutation():
            task, started = self.registry.complete(
                task_id, message, advance=not self.is_interrupted
            )
            if task is None:
                return None
            self._announce_complete(task, started, already_started=True)
            return task.copy()

    def _announce_complete(
        self, task: Task, next_task: Optional[Task], already_started: bool = False
    ) -> None:
        self.display.complete_progress_bar(task.id, task.message or "Completed")
        self.display.log(f"Completed: {task.name}", "success")
        self._record(task)
        self.bus.publish(TaskEvent(EventKind.TASK_COMPLETE, task.copy()))

        if next_task is None or self.is_interrupted:
            return
        if not already_started:
            # Auto-complete path: the registry did not advance on its own
            next_task = self.registry.start(next_task.id)
            if next_task is None:
                return
        self._announce_start(next_task)

    def fail_task(
        self, task_id: str, error: str, details: Optional[Iterable[str]] = None
    ) -> Optional[Task]:
        with self._mutation():
            task = self.registry.fail(task_id, error, details)
            if task is None:
                return None
            self.display.complete_progress_bar(task.id, f"Failed: {error}")
            self.display.show_error(error, task.details or None)
            self._record(task)
            self.bus.publish(TaskEvent(EventKind.TASK_FAIL, task.copy()))
            return task.copy()

    # ------------------------------------------------------------------
    # Subtasks
    # ------------------------------------------------------------------

    def add_subtask(
        self, parent_id: str, subtask_id: str, name: str, total: float = 100
    ) -> Optional[Task]:
        with self._mutation():
            subtask = self.registry.add_subtask(parent_id, subtask_id, name, total)
            if subtask is not None:
                self.display.log(f"  -> {name}", "debug")
            return subtask.copy() if subtask else None

    def update_subtask(
        self, parent_id: str, subtask_id: str, progress: float, message: Optional[str] = None
    ) -> Optional[Task]:
        with self._mutation():
            parent = self.registry.update_subtask(parent_id, subtask_id, progress, message)
            return self._announce_parent(parent)

    def complete_subtask(
        self, parent_id: str, subtask_id: str, message: Optional[str] = None
    ) -> Optional[Task]:
        with self._mutation():
            parent = self.registry.complete_subtask(parent_id, subtask_id, message)
            return self._announce_parent(parent)

    def _announce_parent(self, parent: Optional[Task]) -> Optional[Task]:
        if parent is None:
            return None
        if parent.status == TaskStatus.COMPLETED:
            self._announce_complete(parent, self.registry.next_pending())
            return parent.copy()
        self.display.update_progress_bar(parent.id, parent.progress, parent.message)
        self._record(parent)
        self.bus.publish(TaskEvent(EventKind.TASK_UPDATE, parent.copy()))
        return parent.copy()

    # ------------------------------------------------------------------
    # Work units
    # ------------------------------------------------------------------

    def work_unit(self, task_id: str) -> ProgressCallback:
        """
        Progress callback for a work unit.

        The returned callable takes a completion fraction in [0, 1].
        """
        def _report(fraction: float) -> None:
            task = self.registry.get(task_id)
            if task is None:
                logger.warning(f"Unknown task: {task_id}")
                return
            self.update_task(task_id, fraction * task.total)

        return _report

    def run_work_unit(
        self, task_id: str, unit: Callable[[ProgressCallback], T]
    ) -> Optional[T]:
        """
        Run a work unit for a task and record its outcome.

        The task is started if still pending. A WorkUnitFailure marks the
        task failed; the pipeline is not halted. Returns the unit's result,
        or None on failure or interrupt.
        """
        task = self.registry.get(task_id)
        if task is None:
            logger.warning(f"Unknown task: {task_id}")
            return None
        if task.status == TaskStatus.PENDING:
            self.start_task(task_id)

        try:
            result = unit(self.work_unit(task_id))
        except WorkUnitFailure as e:
            self.fail_task(task_id, str(e), e.details)
            return None

        if self.is_interrupted:
            return None
        self.complete_task(task_id)
        return result

    # ------------------------------------------------------------------
    # Interrupts
    # ------------------------------------------------------------------

    def _on_interrupt(self, source: str) -> None:
        if self._depth > 0:
            self._interrupt_pending = source
            return
        self._apply_interrupt(source)

    def _apply_interrupt(self, source: str) -> None:
        with self._mutation():
            task = self.registry.interrupt_current()
            self.display.log("Interrupt received. Press Ctrl+C again to force quit.", "warning")
            if task is not None:
                self.display.complete_progress_bar(task.id, "Interrupted")
                self._record(task)
            self.bus.publish(InterruptEvent(task.copy() if task else None))

            self.display.log("Saving current progress...", "info")
            self.bus.publish(SaveProgressEvent(self.snapshot()))
            logger.info(f"Checkpoint requested after {source} interrupt")

    def _on_force_quit(self) -> None:
        self.display.log("Force quitting...", "error")

    # ------------------------------------------------------------------
    # Snapshots and summary
    # ------------------------------------------------------------------

    def _record(self, task: Task) -> None:
        stamp = self._clock().isoformat(timespec="seconds")
        line = f"[{stamp}] {task.name} {task.percentage:.0f}% [{task.status.value}]"
        if task.message:
            line += f" | {task.message}"
        self._logs.append(line)

    def snapshot(self) -> ProgressSnapshot:
        return self.codec.snapshot(
            self.registry,
            interrupted=self.is_interrupted,
            logs=self._logs,
            start_time=self.created_at,
        )

    def restore(self, data: Union[ProgressSnapshot, Mapping[str, Any], None]) -> int:
        """
        Load a saved snapshot. Running tasks come back as pending.

        Returns the number of tasks restored (0 for malformed input).
        """
        with self._mutation():
            try:
                snapshot = self.codec.decode(data)
            except MalformedSnapshotError as e:
                self.display.log(f"Could not restore progress: {e}", "warning")
                logger.warning(f"Nothing to restore: {e}")
                return 0

            count = self.codec.restore(self.registry, snapshot)
            self._logs.extend(snapshot.logs)
            self.display.log(f"Restored {count} tasks from saved progress", "info")
            return count

    def summary(self) -> SummaryReport:
        started = self.registry.run_started_at
        now = self._clock()
        duration = (now - started).total_seconds() if started else 0.0
        return SummaryReport.from_tasks(self.registry.tasks, duration, generated_at=now)

    def show_summary(self) -> SummaryReport:
        report = self.summary()
        self.display.show_summary(report)
        return report

    def cleanup(self) -> None:
        self.display.cleanup()
        self.interrupts.uninstall()
        self.bus.clear()
