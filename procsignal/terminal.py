"""
Reference-counted raw mode for the process terminal.

Raw input mode is a single setting shared by the whole process. Every attached
manager acquires it once and releases it once on detach; the terminal is
switched on the first acquire and restored on the last release.
"""

import logging
import sys
import termios
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, TextIO

from .exceptions import LifecycleError

# termios attribute list indices
_IFLAG, _CFLAG, _LFLAG, _CC = 0, 2, 3, 6


class TerminalModeCoordinator:
    """
    Process-wide raw-mode toggle with reference counting.

    Usage:
        coordinator = TerminalModeCoordinator()
        coordinator.acquire()    # terminal goes raw on 0 -> 1
        ...
        coordinator.release()    # previous mode restored on 1 -> 0

    When the stream is not a TTY (output redirected, CI, pytest capture) the
    terminal is left alone but the count still moves, so release bookkeeping
    stays balanced.
    """

    def __init__(self, stream: TextIO | None = None, lg: Any | None = None) -> None:
        """
        Initialize the coordinator.

        Args:
            stream: Input stream to control (sys.stdin, resolved at acquire
                    time, if None)
            lg: Logger (module logger if None)
        """
        self._stream = stream
        self._lg = lg or logging.getLogger(__name__)
        self._refcount = 0
        self._fd: int | None = None
        self._saved_attrs: list[Any] | None = None

    @property
    def refcount(self) -> int:
        """Number of outstanding acquires."""
        return self._refcount

    @property
    def is_raw(self) -> bool:
        """True while this coordinator holds the terminal in raw mode."""
        return self._saved_attrs is not None

    def is_interactive(self) -> bool:
        """Check whether the controlled stream is a terminal."""
        return self._interactive_stream() is not None

    def acquire(self) -> None:
        """Increment the count, entering raw mode on 0 -> 1."""
        if self._refcount == 0:
            stream = self._interactive_stream()
            if stream is not None:
                self._enter_raw(stream)
        self._refcount += 1

    def release(self) -> None:
        """
        Decrement the count, restoring the captured mode on 1 -> 0.

        Raises:
            LifecycleError: If called with nothing acquired
        """
        if self._refcount == 0:
            raise LifecycleError("raw mode released more often than acquired", refcount=0)
        self._refcount -= 1
        if self._refcount == 0:
            self._restore()

    @contextmanager
    def raw_mode(self) -> Iterator["TerminalModeCoordinator"]:
        """Hold raw mode for the duration of a with block."""
        self.acquire()
        try:
            yield self
        finally:
            self.release()

    def _interactive_stream(self) -> TextIO | None:
        """The controlled stream, or None when it is not a terminal."""
        stream = self._stream if self._stream is not None else sys.stdin
        if stream is None:
            return None
        try:
            return stream if stream.isatty() else None
        except (AttributeError, ValueError):
            # closed or replaced stream
            return None

    def _enter_raw(self, stream: TextIO) -> None:
        fd = stream.fileno()
        saved = termios.tcgetattr(fd)

        mode = termios.tcgetattr(fd)
        mode[_IFLAG] &= ~(
            termios.BRKINT | termios.ICRNL | termios.INPCK | termios.ISTRIP | termios.IXON
        )
        mode[_CFLAG] |= termios.CS8
        mode[_LFLAG] &= ~(termios.ECHO | termios.ICANON | termios.IEXTEN | termios.ISIG)
        mode[_CC][termios.VMIN] = 1
        mode[_CC][termios.VTIME] = 0
        termios.tcsetattr(fd, termios.TCSADRAIN, mode)

        self._fd = fd
        self._saved_attrs = saved
        self._lg.debug("terminal raw mode on", extra={"fd": fd})

    def _restore(self) -> None:
        if self._saved_attrs is None or self._fd is None:
            return
        fd, saved = self._fd, self._saved_attrs
        self._fd = None
        self._saved_attrs = None
        termios.tcsetattr(fd, termios.TCSADRAIN, saved)
        self._lg.debug("terminal raw mode off", extra={"fd": fd})
