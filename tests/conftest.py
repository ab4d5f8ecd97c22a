"""
Pytest configuration and fixtures.
"""

import pytest
import tempfile
import shutil
from datetime import datetime, timedelta, timezone
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from docgen_progress.config import ReporterConfig
from docgen_progress.progress import InterruptController, Reporter


class FakeClock:
    """Wall clock that only moves when told to."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 1, 1, 10, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


class FakeMonotonic:
    def __init__(self):
        self.value = 1000.0

    def __call__(self):
        return self.value

    def advance(self, seconds):
        self.value += seconds


class RecordingDisplay:
    """Display that records every call."""

    def __init__(self):
        self.calls = []
        self.summaries = []
        self.cleaned_up = False

    def create_progress_bar(self, task_id, label, total):
        self.calls.append(("create", task_id, label, total))

    def update_progress_bar(self, task_id, progress, message=None):
        self.calls.append(("update", task_id, progress, message))

    def complete_progress_bar(self, task_id, message):
        self.calls.append(("complete", task_id, message))

    def log(self, line, level="info"):
        self.calls.append(("log", line, level))

    def show_error(self, message, details=None):
        self.calls.append(("error", message, details))

    def show_summary(self, report):
        self.summaries.append(report)

    def cleanup(self):
        self.cleaned_up = True

    def logged(self, level=None):
        return [c[1] for c in self.calls if c[0] == "log" and (level is None or c[2] == level)]


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp = tempfile.mkdtemp()
    yield Path(temp)
    shutil.rmtree(temp, ignore_errors=True)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def monotonic():
    return FakeMonotonic()


@pytest.fixture
def display():
    return RecordingDisplay()


@pytest.fixture
def controller(monotonic):
    """Interrupt controller that raises ForceQuit instead of exiting."""
    return InterruptController(debounce_seconds=0.5, exit_code=130, hard_exit=False, monotonic=monotonic)


@pytest.fixture
def reporter(display, controller, clock):
    return Reporter(display=display, config=ReporterConfig(), interrupts=controller, clock=clock)


@pytest.fixture
def home(temp_dir, monkeypatch):
    """Point the user config directory at a temp dir."""
    monkeypatch.setenv("HOME", str(temp_dir))
    return temp_dir
