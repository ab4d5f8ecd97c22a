from __future__ import annotations

import logging
import re
import time
from contextlib import nullcontext
from pathlib import Path
from typing import List, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape as escape_markup
from rich.table import Table

from .checkpoint import clear_checkpoint, load_checkpoint, save_checkpoint
from .config import ReporterConfig, load_config, save_config
from .display import NullDisplay, RichDisplay
from .keys import EscapeKeyListener
from .progress import (
    EventKind,
    Reporter,
    SaveProgressEvent,
    TaskStatus,
    WorkUnitFailure,
)
from .progress.reporter import ProgressCallback
from .streaming import ActivityStream, FileQueue

app = typer.Typer(no_args_is_help=True, help="Track documentation generation runs with resumable progress")

console = Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _slug(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "task"


class SimulatedUnit:
    """Stand-in work unit: reads one file per step, optionally failing halfway."""

    def __init__(
        self,
        reporter: Reporter,
        task_id: str,
        steps: int = 10,
        delay: float = 0.2,
        fail: bool = False,
        subtasks: int = 0,
        stream: Optional[ActivityStream] = None,
        sleep=time.sleep,
    ):
        self.reporter = reporter
        self.task_id = task_id
        self.steps = max(1, steps)
        self.delay = delay
        self.fail = fail
        self.subtasks = subtasks
        self.stream = stream or ActivityStream()
        self._sleep = sleep

    def __call__(self, report: ProgressCallback) -> int:
        sub_ids = [f"{self.task_id}.{i + 1}" for i in range(self.subtasks)]
        task = self.reporter.get_task(self.task_id)
        if task is not None and not task.subtasks:
            for i, sub_id in enumerate(sub_ids):
                self.reporter.add_subtask(self.task_id, sub_id, f"Part {i + 1}")

        name = task.name if task is not None else self.task_id
        callbacks = self.stream.work_unit_callbacks(name, on_progress=report)
        files = FileQueue(self.stream)
        files.queue_files([f"{self.task_id}/part-{i}.md" for i in range(1, self.steps + 1)])

        for step in range(1, self.steps + 1):
            # Cooperative cancel: the reporter only flags the interrupt
            if self.reporter.is_interrupted:
                return step - 1
            callbacks.on_tool_call("Read", {"file_path": files.process_next()})
            self._sleep(self.delay)

            if self.fail and step > self.steps // 2:
                raise WorkUnitFailure(
                    f"Simulated failure at step {step}",
                    details=[f"task={self.task_id}", f"step={step}/{self.steps}"],
                )

            if sub_ids:
                for sub_id in sub_ids:
                    self.reporter.update_subtask(
                        self.task_id, sub_id, step * 100 / self.steps, f"step {step}/{self.steps}"
                    )
            else:
                callbacks.on_progress(step * 100 / self.steps)
            files.complete_file({"step": step})
        return self.steps


@app.command()
def run(
    names: List[str] = typer.Argument(..., help="Task names, run in order"),
    steps: int = typer.Option(10, "--steps", "-s", help="Steps per task"),
    delay: float = typer.Option(0.2, "--delay", "-d", help="Seconds per step"),
    fail: Optional[List[str]] = typer.Option(None, "--fail", help="Task name that should fail"),
    subtasks: int = typer.Option(0, "--subtasks", help="Split each task into N subtasks"),
    checkpoint: Optional[Path] = typer.Option(None, "--checkpoint", "-c", help="Checkpoint file"),
    resume: bool = typer.Option(False, "--resume", "-r", help="Restore from the checkpoint first"),
    escape: Optional[bool] = typer.Option(None, "--escape/--no-escape", help="Escape key interrupts"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="No live display"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Run tasks with live progress. Ctrl+C saves a checkpoint; press again to force quit."""
    cfg = load_config()
    if verbose:
        cfg = cfg.model_copy(update={"verbose": True})
    _setup_logging(cfg.verbose)

    path = checkpoint or Path(cfg.checkpoint_path)
    display = NullDisplay() if quiet else RichDisplay(console=console, verbose=cfg.verbose)
    reporter = Reporter(display=display, config=cfg)
    failing = {_slug(n) for n in (fail or [])}

    def _save(event: SaveProgressEvent) -> None:
        save_checkpoint(path, event.snapshot, reporter.codec)

    reporter.bus.subscribe(_save, kinds=[EventKind.SAVE_PROGRESS])

    # Step-level activity is only shown with --verbose
    stream = ActivityStream(
        remaining=lambda: len(reporter.registry.pending()),
        on_event=lambda event: display.log(event.render(), "debug"),
    )
    stream.attach(reporter.bus)

    if resume:
        data = load_checkpoint(path)
        if data is None:
            console.print(f"[yellow]No checkpoint at {path}, starting fresh[/yellow]")
        else:
            reporter.restore(data)

    order: List[str] = []
    for name in names:
        task_id = _slug(name)
        if task_id not in reporter.registry:
            reporter.register_task(task_id, name)
        order.append(task_id)

    use_escape = cfg.escape_key if escape is None else escape
    listener = EscapeKeyListener() if use_escape and not quiet else nullcontext()

    try:
        with reporter.interrupts, listener:
            for task_id in order:
                if reporter.is_interrupted:
                    break
                task = reporter.registry.get(task_id)
                if task.status.is_terminal and task.status != TaskStatus.INTERRUPTED:
                    continue
                if task.status != TaskStatus.RUNNING and reporter.start_task(task_id) is None:
                    continue

                unit = SimulatedUnit(
                    reporter,
                    task_id,
                    steps=steps,
                    delay=delay,
                    fail=task_id in failing,
                    subtasks=subtasks,
                    stream=stream,
                )
                reporter.run_work_unit(task_id, unit)
                display.log(stream.status_line(), "info")

        report = reporter.show_summary()
    finally:
        reporter.cleanup()

    if reporter.is_interrupted:
        console.print(f"[yellow]Progress saved to {path}. Resume with --resume.[/yellow]")
        raise typer.Exit(code=1)

    clear_checkpoint(path)
    if report.failed:
        raise typer.Exit(code=1)


@app.command()
def status(
    checkpoint: Optional[Path] = typer.Option(None, "--checkpoint", "-c", help="Checkpoint file"),
) -> None:
    """Показать сохранённый прогресс."""
    cfg = load_config()
    path = checkpoint or Path(cfg.checkpoint_path)

    data = load_checkpoint(path)
    if data is None:
        console.print(f"[yellow]No checkpoint at {path}[/yellow]")
        raise typer.Exit(code=1)

    reporter = Reporter(display=NullDisplay(), config=cfg)
    if reporter.restore(data) == 0:
        console.print(f"[red]Checkpoint {path} has no restorable tasks[/red]")
        raise typer.Exit(code=1)

    table = Table(title=f"Checkpoint: {path}")
    table.add_column("id")
    table.add_column("task")
    table.add_column("status")
    table.add_column("progress", justify="right")
    table.add_column("message")

    for task in reporter.tasks():
        color = {
            TaskStatus.COMPLETED: "green",
            TaskStatus.FAILED: "red",
            TaskStatus.INTERRUPTED: "yellow",
        }.get(task.status, "dim")
        table.add_row(
            escape_markup(task.id),
            escape_markup(task.name),
            f"[{color}]{task.status.value}[/{color}]",
            f"{task.percentage:.0f}%",
            escape_markup(task.message or ""),
        )

    console.print(table)
    completed, total, percentage = reporter.overall_progress()
    console.print(f"\n[dim]{completed}/{total} tasks completed ({percentage}%)[/dim]")


@app.command("config")
def config_set(
    duplicate_policy: Optional[str] = typer.Option(None, "--duplicate-policy", help="error | reset"),
    unknown_task_policy: Optional[str] = typer.Option(None, "--unknown-task-policy", help="ignore | auto_register"),
    auto_complete: Optional[bool] = typer.Option(None, "--auto-complete/--explicit-complete"),
    debounce: Optional[float] = typer.Option(None, "--debounce", help="Seconds to coalesce repeated interrupts"),
    exit_code: Optional[int] = typer.Option(None, "--exit-code", help="Exit status on force quit"),
    escape: Optional[bool] = typer.Option(None, "--escape/--no-escape"),
    checkpoint: Optional[str] = typer.Option(None, "--checkpoint"),
) -> None:
    """Сохранить/обновить конфиг."""
    cfg = load_config()
    data = cfg.model_dump()
    updates = {
        "duplicate_policy": duplicate_policy,
        "unknown_task_policy": unknown_task_policy,
        "auto_complete_on_full": auto_complete,
        "interrupt_debounce_seconds": debounce,
        "force_quit_exit_code": exit_code,
        "escape_key": escape,
        "checkpoint_path": checkpoint,
    }
    data.update({k: v for k, v in updates.items() if v is not None})

    try:
        new_cfg = ReporterConfig(**data)
        new_cfg.validate_ready()
    except (ValidationError, ValueError) as e:
        console.print(f"[red]Invalid config: {escape_markup(str(e))}[/red]")
        raise typer.Exit(code=1)
    save_config(new_cfg)
    console.print("OK")


@app.command()
def config_show() -> None:
    """Показать конфиг."""
    console.print(load_config().model_dump_json(indent=2))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
