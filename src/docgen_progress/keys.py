"""
Escape-key interrupt source.

Watches the terminal for a bare Escape key press and forwards it as SIGINT,
so both inputs go through the same InterruptController transition on the
main thread. POSIX terminals only; elsewhere the listener stays inactive.
"""

from __future__ import annotations

import logging
import os
import select
import signal
import sys
import threading
from typing import Callable, Optional, TextIO

logger = logging.getLogger(__name__)

ESC = b"\x1b"
CTRL_C = b"\x03"


def raise_sigint() -> None:
    signal.raise_signal(signal.SIGINT)


def is_interrupt_key(data: bytes, followed_by_more: bool = False) -> bool:
    """
    Whether a key read from the terminal should interrupt.

    An ESC byte followed immediately by more input is the start of an escape
    sequence (arrow keys etc.), not an Escape press.
    """
    if data == CTRL_C:
        return True
    return data == ESC and not followed_by_more


class EscapeKeyListener:
    """Background reader that turns Escape presses into interrupts."""

    POLL_SECONDS = 0.2

    def __init__(
        self,
        on_escape: Callable[[], None] = raise_sigint,
        stream: Optional[TextIO] = None,
    ):
        self.on_escape = on_escape
        self.stream = stream or sys.stdin
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._saved_attrs = None

    @property
    def active(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        """Start listening. Returns False when stdin is not a POSIX terminal."""
        if os.name != "posix" or not self.stream.isatty():
            logger.debug("Escape listener disabled: not a POSIX terminal")
            return False

        import termios
        import tty

        fd = self.stream.fileno()
        self._saved_attrs = termios.tcgetattr(fd)
        # cbreak keeps ISIG, so Ctrl+C still arrives as a real SIGINT
        tty.setcbreak(fd)

        self._stop.clear()
        self._thread = threading.Thread(target=self._run, args=(fd,), name="escape-listener", daemon=True)
        self._thread.start()
        return True

    def _run(self, fd: int) -> None:
        while not self._stop.is_set():
            ready, _, _ = select.select([fd], [], [], self.POLL_SECONDS)
            if not ready:
                continue
            data = os.read(fd, 1)
            if not data:
                return

            followed = False
            if data == ESC:
                more, _, _ = select.select([fd], [], [], 0)
                if more:
                    followed = True
                    # Drain the rest of the sequence
                    os.read(fd, 16)

            if is_interrupt_key(data, followed):
                logger.debug("Escape key pressed")
                self.on_escape()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=1.0)
            self._thread = None
        if self._saved_attrs is not None:
            import termios

            termios.tcsetattr(self.stream.fileno(), termios.TCSADRAIN, self._saved_attrs)
            self._saved_attrs = None

    def __enter__(self) -> EscapeKeyListener:
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
