"""
Progress aggregation.

A parent's progress is the unweighted mean of its subtasks' completion
fractions, scaled to the parent's total. Subtasks count equally regardless
of their own totals.
"""

from typing import Iterable, Sequence, Tuple

from .models import Task, TaskStatus


def subtask_fraction(task: Task) -> float:
    """Completion fraction of a single task. A zero total counts as 0."""
    if not task.total or task.total <= 0:
        return 0.0
    return task.progress / task.total


def aggregate_fraction(subtasks: Sequence[Task]) -> float:
    """Mean completion fraction over subtasks (0.0 for an empty list)."""
    if not subtasks:
        return 0.0
    return sum(subtask_fraction(s) for s in subtasks) / len(subtasks)


def aggregate_progress(parent: Task) -> float:
    """
    Effective progress of a parent task.

    Returns the parent's own progress when it has no subtasks.
    """
    if not parent.subtasks:
        return parent.progress
    return aggregate_fraction(parent.subtasks) * parent.total


def overall_progress(tasks: Iterable[Task]) -> Tuple[int, int, int]:
    """
    Count completed tasks across a run.

    Returns:
        (completed_count, total_count, percentage)
    """
    tasks = list(tasks)
    total = len(tasks)
    completed = sum(1 for t in tasks if t.status == TaskStatus.COMPLETED)
    percentage = round((completed / total) * 100) if total else 0
    return completed, total, percentage
