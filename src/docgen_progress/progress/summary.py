"""End-of-run summary report."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from .models import Task, TaskStatus, utc_now


def format_duration(seconds: float) -> str:
    """
    Format a duration as "1h 2m 3s", dropping leading zero units.

    Examples: 5 -> "5s", 65 -> "1m 5s", 3605 -> "1h 0m 5s".
    """
    total = max(0, int(seconds))
    hours, rem = divmod(total, 3600)
    minutes, secs = divmod(rem, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


@dataclass
class SummaryReport:
    """Structured run summary handed to the display."""
    title: str
    completed: List[str] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)
    interrupted: List[Tuple[str, float]] = field(default_factory=list)
    pending: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0
    generated_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_tasks(
        cls,
        tasks: Iterable[Task],
        duration_seconds: float,
        title: str = "Documentation Generation Summary",
        generated_at: Optional[datetime] = None,
    ) -> SummaryReport:
        report = cls(title=title, duration_seconds=max(0.0, duration_seconds))
        if generated_at is not None:
            report.generated_at = generated_at

        for task in tasks:
            if task.status == TaskStatus.COMPLETED:
                report.completed.append(task.name)
            elif task.status == TaskStatus.FAILED:
                report.failed.append((task.name, task.message or ""))
            elif task.status == TaskStatus.INTERRUPTED:
                report.interrupted.append((task.name, round(task.percentage, 1)))
            else:
                report.pending.append(task.name)
        return report

    @property
    def duration(self) -> str:
        return format_duration(self.duration_seconds)

    @property
    def total_tasks(self) -> int:
        return len(self.completed) + len(self.failed) + len(self.interrupted) + len(self.pending)

    @property
    def stats(self) -> Dict[str, object]:
        return {
            "Total Tasks": self.total_tasks,
            "Completed": len(self.completed),
            "Failed": len(self.failed),
            "Interrupted": len(self.interrupted),
            "Duration": self.duration,
        }

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "completed": list(self.completed),
            "failed": [{"name": n, "error": e} for n, e in self.failed],
            "interrupted": [{"name": n, "percentage": p} for n, p in self.interrupted],
            "pending": list(self.pending),
            "duration_seconds": self.duration_seconds,
            "duration": self.duration,
            "generated_at": self.generated_at.isoformat(),
        }
