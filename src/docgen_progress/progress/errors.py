"""Errors raised by the progress tracking core."""


class ProgressError(Exception):
    """Base class for progress tracking errors."""
    pass


class DuplicateTaskError(ProgressError):
    """A task id was registered twice."""

    def __init__(self, task_id: str):
        super().__init__(f"Task already registered: {task_id}")
        self.task_id = task_id


class UnknownTaskError(ProgressError):
    """An operation referenced a task id that was never registered."""

    def __init__(self, task_id: str):
        super().__init__(f"Unknown task: {task_id}")
        self.task_id = task_id


class MalformedSnapshotError(ProgressError):
    """Restore input is missing required structure."""
    pass


class WorkUnitFailure(ProgressError):
    """Raised by a work unit to report that its task failed."""

    def __init__(self, message: str, details=None):
        super().__init__(message)
        self.details = list(details or [])


class ForceQuit(SystemExit):
    """Second interrupt: terminate the process without further checkpoints."""

    def __init__(self, exit_code: int = 130):
        super().__init__(exit_code)
        self.exit_code = exit_code
