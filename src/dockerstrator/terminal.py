"""Cancel-key polling for the plain terminal log stream."""

from __future__ import annotations

import os
import select
import signal
import sys
import termios
import tty

# Esc, q and Ctrl+C (the latter also arrives as SIGINT)
CANCEL_KEYS = (b"\x1b", b"q", b"Q", b"\x03")


class CancelKeys:
    """Context manager that reports whether a cancel key was pressed.

    Puts the terminal in cbreak mode so single key presses can be read
    without blocking, and turns SIGINT into a cancellation request instead
    of a KeyboardInterrupt. Without a TTY on stdin only SIGINT cancels.
    """

    def __init__(self, stream=None):
        self.stream = stream if stream is not None else sys.stdin
        self._fd: int | None = None
        self._saved_attrs = None
        self._saved_sigint = None
        self._cancelled = False

    def __enter__(self) -> CancelKeys:
        try:
            fd = self.stream.fileno()
        except (AttributeError, OSError, ValueError):
            fd = None
        if fd is not None and os.isatty(fd):
            self._fd = fd
            self._saved_attrs = termios.tcgetattr(fd)
            tty.setcbreak(fd)
        self._saved_sigint = signal.signal(signal.SIGINT, self._on_sigint)
        return self

    def __exit__(self, *exc_info) -> None:
        if self._fd is not None and self._saved_attrs is not None:
            termios.tcsetattr(self._fd, termios.TCSADRAIN, self._saved_attrs)
        if self._saved_sigint is not None:
            signal.signal(signal.SIGINT, self._saved_sigint)

    def _on_sigint(self, signum, frame) -> None:
        self._cancelled = True

    def __call__(self) -> bool:
        """Return True once a cancel key or SIGINT has been seen."""
        if self._cancelled:
            return True
        if self._fd is None:
            return False
        readable, _, _ = select.select([self._fd], [], [], 0)
        if readable:
            key = os.read(self._fd, 1)
            if key in CANCEL_KEYS:
                self._cancelled = True
        return self._cancelled
