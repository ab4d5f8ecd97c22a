"""
In-process event bus for task lifecycle notifications.

Delivery is synchronous and ordered. An event published while another is
being delivered is queued behind it, so observers always see transitions in
the order they happened.
"""

from __future__ import annotations

import contextlib
import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Deque, FrozenSet, Iterable, List, Optional, Tuple, Union

from .models import Task

if TYPE_CHECKING:
    from .snapshot import ProgressSnapshot

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    """Kinds of lifecycle events."""
    TASK_START = "task-start"
    TASK_UPDATE = "task-update"
    TASK_COMPLETE = "task-complete"
    TASK_FAIL = "task-fail"
    INTERRUPT = "interrupt"
    SAVE_PROGRESS = "save-progress"


TASK_EVENT_KINDS = frozenset({
    EventKind.TASK_START,
    EventKind.TASK_UPDATE,
    EventKind.TASK_COMPLETE,
    EventKind.TASK_FAIL,
})


@dataclass(frozen=True)
class TaskEvent:
    """A task changed state. The payload is a copy of the task."""
    kind: EventKind
    task: Task

    def __post_init__(self) -> None:
        if self.kind not in TASK_EVENT_KINDS:
            raise ValueError(f"Not a task event kind: {self.kind}")


@dataclass(frozen=True)
class InterruptEvent:
    """An interrupt was received; task is what got interrupted, if anything."""
    task: Optional[Task] = None
    kind: EventKind = EventKind.INTERRUPT


@dataclass(frozen=True)
class SaveProgressEvent:
    """Checkpoint request carrying the state to persist."""
    snapshot: "ProgressSnapshot"
    kind: EventKind = EventKind.SAVE_PROGRESS


Event = Union[TaskEvent, InterruptEvent, SaveProgressEvent]
EventHandler = Callable[[Event], None]


class EventBus:
    """
    Single-threaded publish/subscribe.

    Example:
        bus = EventBus()
        unsubscribe = bus.subscribe(on_event, kinds=[EventKind.TASK_COMPLETE])
        bus.publish(TaskEvent(EventKind.TASK_COMPLETE, task.copy()))
        unsubscribe()
    """

    def __init__(self) -> None:
        self._handlers: List[Tuple[EventHandler, Optional[FrozenSet[EventKind]]]] = []
        self._queue: Deque[Event] = deque()
        self._dispatching = False

    def subscribe(
        self,
        handler: EventHandler,
        kinds: Optional[Iterable[EventKind]] = None,
    ) -> Callable[[], None]:
        """
        Register a handler, optionally for a subset of event kinds.

        Returns:
            Callable that removes the subscription.
        """
        entry = (handler, frozenset(kinds) if kinds is not None else None)
        self._handlers.append(entry)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._handlers.remove(entry)

        return _unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)

    def publish(self, event: Event) -> None:
        self._queue.append(event)
        if self._dispatching:
            return

        self._dispatching = True
        try:
            while self._queue:
                self._dispatch(self._queue.popleft())
        finally:
            self._dispatching = False

    def _dispatch(self, event: Event) -> None:
        # Handlers added during delivery wait for the next event
        for handler, kinds in list(self._handlers):
            if kinds is not None and event.kind not in kinds:
                continue
            try:
                handler(event)
            except Exception:
                logger.exception(f"Event handler failed for {event.kind.value}")

    def clear(self) -> None:
        self._handlers.clear()
        self._queue.clear()
