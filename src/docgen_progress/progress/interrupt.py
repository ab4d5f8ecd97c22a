"""
Interrupt Controller
====================

Turns operator interrupts (Ctrl+C, Escape) into at most one checkpoint per
run, escalating to a forced exit on a later signal:

    armed --signal--> interrupted-once --signal--> force-quit

One extra signal inside the debounce window of the first is coalesced, since
a single key press can produce both SIGINT and an escape byte. Any signal
beyond that forces the exit, however quickly it follows.
"""

from __future__ import annotations

import logging
import os
import signal
import threading
import time
from enum import Enum
from typing import Callable, Dict, Iterable, Optional

from .errors import ForceQuit

logger = logging.getLogger(__name__)

DEFAULT_SIGNALS = (signal.SIGINT,)


class InterruptState(str, Enum):
    ARMED = "armed"
    INTERRUPTED = "interrupted-once"
    FORCE_QUIT = "force-quit"


class InterruptController:
    """
    Interrupt state machine shared by every interrupt source.

    Usage:
        controller = InterruptController(debounce_seconds=0.5)
        controller.bind(on_interrupt=reporter_handler)
        with controller:                # installs SIGINT handler
            run_pipeline()
    """

    MAX_DUPLICATES = 1

    def __init__(
        self,
        debounce_seconds: float = 0.5,
        exit_code: int = 130,
        hard_exit: bool = True,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.debounce_seconds = debounce_seconds
        self.exit_code = exit_code
        self.hard_exit = hard_exit
        self._monotonic = monotonic

        self._state = InterruptState.ARMED
        self._interrupted_at: Optional[float] = None
        self._duplicates_absorbed = 0
        self._lock = threading.Lock()
        self._on_interrupt: Optional[Callable[[str], None]] = None
        self._on_force_quit: Optional[Callable[[], None]] = None
        self._previous_handlers: Dict[int, object] = {}
        self.signals_received = 0

    @property
    def state(self) -> InterruptState:
        return self._state

    @property
    def is_interrupted(self) -> bool:
        return self._state != InterruptState.ARMED

    def bind(
        self,
        on_interrupt: Optional[Callable[[str], None]] = None,
        on_force_quit: Optional[Callable[[], None]] = None,
    ) -> None:
        """Set the callbacks run on the first interrupt and on force-quit."""
        self._on_interrupt = on_interrupt
        self._on_force_quit = on_force_quit

    def trigger(self, source: str = "signal") -> InterruptState:
        """
        Feed one interrupt signal into the state machine.

        Returns the state after the signal. In force-quit this does not
        return: the process exits (or ForceQuit is raised when hard_exit is
        off).
        """
        self.signals_received += 1
        if not self._lock.acquire(blocking=False):
            # Landed while a transition runs, e.g. from inside on_interrupt
            if self._state == InterruptState.FORCE_QUIT or self._absorb_duplicate(source):
                return self._state
            self._state = InterruptState.FORCE_QUIT
            self._force_quit()
            return self._state

        try:
            now = self._monotonic()
            if self._state == InterruptState.ARMED:
                self._state = InterruptState.INTERRUPTED
                self._interrupted_at = now
                logger.warning(f"Interrupt received from {source}")
                if self._on_interrupt is not None:
                    self._on_interrupt(source)

            elif self._state == InterruptState.INTERRUPTED:
                within = now - (self._interrupted_at or now) < self.debounce_seconds
                if within and self._absorb_duplicate(source):
                    return self._state
                self._state = InterruptState.FORCE_QUIT
                self._force_quit()
        finally:
            self._lock.release()

        return self._state

    def _absorb_duplicate(self, source: str) -> bool:
        # One key press yields at most SIGINT plus an escape byte
        if self._duplicates_absorbed >= self.MAX_DUPLICATES:
            return False
        self._duplicates_absorbed += 1
        logger.debug(f"Interrupt from {source} coalesced as a duplicate")
        return True

    def _force_quit(self) -> None:
        logger.error(f"Force quitting with exit code {self.exit_code}")
        if self._on_force_quit is not None:
            try:
                self._on_force_quit()
            except Exception:
                logger.exception("Force-quit callback failed")
        if self.hard_exit:
            os._exit(self.exit_code)
        raise ForceQuit(self.exit_code)

    # ------------------------------------------------------------------
    # OS signal wiring
    # ------------------------------------------------------------------

    def _handle_signal(self, signum, frame) -> None:
        try:
            name = signal.Signals(signum).name
        except ValueError:
            name = str(signum)
        self.trigger(name)

    def install(self, signals: Iterable[int] = DEFAULT_SIGNALS) -> None:
        """Route OS signals to this controller. Main thread only."""
        for sig in signals:
            if sig in self._previous_handlers:
                continue
            self._previous_handlers[sig] = signal.signal(sig, self._handle_signal)
        logger.debug(f"Interrupt handlers installed for {list(self._previous_handlers)}")

    def uninstall(self) -> None:
        for sig, previous in self._previous_handlers.items():
            signal.signal(sig, previous)
        self._previous_handlers.clear()

    @property
    def installed(self) -> bool:
        return bool(self._previous_handlers)

    def __enter__(self) -> InterruptController:
        self.install()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.uninstall()
