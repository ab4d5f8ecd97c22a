"""
Display capability.

The progress core never writes to the terminal itself. It talks to a Display:
RichDisplay renders live progress bars with rich, NullDisplay discards
everything (useful for headless runs and embedding).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, List, Optional, Protocol, Sequence

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskID, TextColumn
from rich.table import Table

if TYPE_CHECKING:
    from .progress.summary import SummaryReport


class Display(Protocol):
    def create_progress_bar(self, task_id: str, label: str, total: float) -> None: ...

    def update_progress_bar(self, task_id: str, progress: float, message: Optional[str] = None) -> None: ...

    def complete_progress_bar(self, task_id: str, message: str) -> None: ...

    def log(self, line: str, level: str = "info") -> None: ...

    def show_error(self, message: str, details: Optional[Sequence[str]] = None) -> None: ...

    def show_summary(self, report: SummaryReport) -> None: ...

    def cleanup(self) -> None: ...


class NullDisplay:
    """Display that renders nothing."""

    def create_progress_bar(self, task_id: str, label: str, total: float) -> None:
        pass

    def update_progress_bar(self, task_id: str, progress: float, message: Optional[str] = None) -> None:
        pass

    def complete_progress_bar(self, task_id: str, message: str) -> None:
        pass

    def log(self, line: str, level: str = "info") -> None:
        pass

    def show_error(self, message: str, details: Optional[Sequence[str]] = None) -> None:
        pass

    def show_summary(self, report: SummaryReport) -> None:
        pass

    def cleanup(self) -> None:
        pass


LEVEL_STYLES = {
    "error": "red",
    "success": "green",
    "warning": "yellow",
    "info": "cyan",
    "debug": "dim",
}


class RichDisplay:
    """Live multi-bar display on a rich console."""

    def __init__(self, console: Optional[Console] = None, verbose: bool = False):
        self.console = console or Console()
        self.verbose = verbose
        self._progress: Optional[Progress] = None
        self._bars: Dict[str, TaskID] = {}

    def _ensure_progress(self) -> Progress:
        if self._progress is None:
            self._progress = Progress(
                SpinnerColumn(),
                TextColumn("[bold]{task.description}"),
                BarColumn(),
                TextColumn("{task.percentage:>3.0f}%"),
                TextColumn("[dim]{task.fields[message]}"),
                console=self.console,
            )
            self._progress.start()
        return self._progress

    def create_progress_bar(self, task_id: str, label: str, total: float) -> None:
        progress = self._ensure_progress()
        if task_id in self._bars:
            progress.reset(self._bars[task_id], total=total, description=escape(label), message="")
            return
        self._bars[task_id] = progress.add_task(escape(label), total=total, message="")

    def update_progress_bar(self, task_id: str, progress: float, message: Optional[str] = None) -> None:
        bar = self._bars.get(task_id)
        if bar is None or self._progress is None:
            return
        self._progress.update(bar, completed=progress, message=escape(message or ""))

    def complete_progress_bar(self, task_id: str, message: str) -> None:
        bar = self._bars.get(task_id)
        if bar is None or self._progress is None:
            return
        self._progress.update(bar, message=escape(message))
        self._progress.stop_task(bar)

    def log(self, line: str, level: str = "info") -> None:
        if level == "debug" and not self.verbose:
            return
        style = LEVEL_STYLES.get(level, "white")
        target = self._progress.console if self._progress is not None else self.console
        target.print(f"[{style}]{escape(line)}[/{style}]", highlight=False)

    def show_error(self, message: str, details: Optional[Sequence[str]] = None) -> None:
        body = escape(message)
        if details:
            body += "\n\n" + "\n".join(f"  {escape(d)}" for d in details)
        self.console.print(Panel(body, title="Error", border_style="red"))

    def show_summary(self, report: SummaryReport) -> None:
        # Bars must stop before the table or the live region redraws over it
        self._stop()

        table = Table(title=report.title)
        table.add_column("Task", style="cyan")
        table.add_column("Status")
        table.add_column("Detail")

        rows: List[tuple] = []
        rows += [(escape(name), "[green]completed[/green]", "") for name in report.completed]
        rows += [(escape(name), "[red]failed[/red]", escape(error)) for name, error in report.failed]
        rows += [
            (escape(name), "[yellow]interrupted[/yellow]", f"{pct:.0f}% complete")
            for name, pct in report.interrupted
        ]
        rows += [(escape(name), "[dim]pending[/dim]", "") for name in report.pending]
        for row in rows:
            table.add_row(*row)

        self.console.print(table)
        stats = " | ".join(f"{k}: {v}" for k, v in report.stats.items())
        self.console.print(f"\n[dim]{stats}[/dim]")
        self.console.print(f"[dim]Generated at {report.generated_at:%Y-%m-%d %H:%M:%S}[/dim]")

    def _stop(self) -> None:
        if self._progress is not None:
            self._progress.stop()
            self._progress = None
            self._bars.clear()

    def cleanup(self) -> None:
        self._stop()
