"""
The process-wide interrupt source.

SharedInterruptSource owns the OS signal handlers and the keypress reader.
It is installed when the first manager attaches and removed when the last one
detaches; in between there is exactly one handler per signal no matter how
many managers are attached.

Signals and the events they raise:

    SIGINT, SIGTERM, SIGTRAP    shutdown (method named after the signal)
    SIGHUP                      reload
    SIGUSR1                     info
    SIGUSR2                     debug

Signals missing on the platform are skipped.
"""

import logging
import os
import select
import signal
import sys
import threading
from collections.abc import Callable
from types import FrameType
from typing import Any, TextIO

from .exceptions import InstallError
from .keys import KeyEvent, decode_keys
from .types import EventKind, ShutdownMethod

# Receives (kind, shutdown method or None, came from a keypress)
Dispatch = Callable[[EventKind, ShutdownMethod | None, bool], None]

SIGNAL_EVENTS: dict[str, tuple[EventKind, ShutdownMethod | None]] = {
    "SIGINT": (EventKind.SHUTDOWN, ShutdownMethod.SIGINT),
    "SIGTERM": (EventKind.SHUTDOWN, ShutdownMethod.SIGTERM),
    "SIGTRAP": (EventKind.SHUTDOWN, ShutdownMethod.SIGTRAP),
    "SIGHUP": (EventKind.RELOAD, None),
    "SIGUSR1": (EventKind.INFO, None),
    "SIGUSR2": (EventKind.DEBUG, None),
}

DEFAULT_POLL_INTERVAL = 0.1


def platform_signals() -> dict[signal.Signals, tuple[EventKind, ShutdownMethod | None]]:
    """Map the signals this platform has to the events they raise."""
    result = {}
    for name, event in SIGNAL_EVENTS.items():
        sig = getattr(signal, name, None)
        if sig is not None:
            result[signal.Signals(sig)] = event
    return result


class KeypressReader:
    """
    Background reader turning terminal bytes into key events.

    Polls the stream with select() so that stop() takes effect within one
    poll interval; the thread is a daemon and never blocks interpreter exit.
    """

    def __init__(
        self,
        stream: TextIO,
        on_key: Callable[[KeyEvent], None],
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        lg: Any | None = None,
    ) -> None:
        self._stream = stream
        self._on_key = on_key
        self._poll_interval = poll_interval
        self._lg = lg or logging.getLogger(__name__)
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        fd = self._stream.fileno()
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, args=(fd,), name="procsignal-keys", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        """Stop reading. Joins the thread unless called from it."""
        self._stop_event.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self._poll_interval * 10)

    def _run(self, fd: int) -> None:
        while not self._stop_event.is_set():
            try:
                ready, _, _ = select.select([fd], [], [], self._poll_interval)
                if not ready:
                    continue
                data = os.read(fd, 1024)
            except (OSError, ValueError) as e:
                self._lg.debug("keypress reader stopped", extra={"reason": str(e)})
                return
            if not data:
                return
            for event in decode_keys(data):
                if self._stop_event.is_set():
                    return
                try:
                    self._on_key(event)
                except Exception as e:
                    self._lg.error(
                        "keypress dispatch failed",
                        extra={"key": event.kind.value, "exception": e},
                    )


class SharedInterruptSource:
    """
    Single owner of the process signal handlers and the keypress reader.

    Previous handlers are saved on install and put back on uninstall. Python
    only allows changing handlers from the main thread; when uninstall runs on
    another thread (a keypress callback detaching the last manager), the
    handlers stay registered until the next signal, which restores them and
    is passed on to the restored handler. An install before that signal
    takes the still-registered handlers back as they are.
    """

    def __init__(
        self,
        dispatch: Dispatch,
        stream: TextIO | None = None,
        keypresses: bool = True,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        lg: Any | None = None,
    ) -> None:
        """
        Initialize the source (nothing is installed yet).

        Args:
            dispatch: Called for every signal and recognized keystroke
            stream: Terminal input stream (sys.stdin, resolved at install, if None)
            keypresses: Whether to read keystrokes when the stream is a TTY
            poll_interval: Keypress reader poll interval in seconds
            lg: Logger (module logger if None)
        """
        self._dispatch = dispatch
        self._stream = stream
        self._keypresses = keypresses
        self._poll_interval = poll_interval
        self._lg = lg or logging.getLogger(__name__)
        self._events = platform_signals()
        self._previous: dict[signal.Signals, Any] = {}
        self._installed = False
        self._restore_pending = False
        self._reader: KeypressReader | None = None

    @property
    def installed(self) -> bool:
        return self._installed

    @property
    def signals(self) -> tuple[signal.Signals, ...]:
        """Signals currently handled by this source."""
        return tuple(self._previous) if self._installed else ()

    @property
    def listening_for_keypresses(self) -> bool:
        return self._reader is not None and self._reader.is_alive()

    def install(self) -> None:
        """
        Install one handler per signal and start the keypress reader.

        Raises:
            InstallError: If already installed
        """
        if self._installed:
            raise InstallError("interrupt source already installed")

        if self._restore_pending:
            # handlers from the last install are still live, take them back
            self._restore_pending = False
        else:
            self._register_handlers()

        self._installed = True
        try:
            self._start_reader()
        except BaseException:
            self._installed = False
            self._release_handlers()
            raise
        self._lg.debug(
            "interrupt source installed",
            extra={
                "signals": [s.name for s in self._previous],
                "keypresses": self.listening_for_keypresses,
            },
        )

    def uninstall(self) -> None:
        """
        Remove the handlers installed by install() and stop the reader.

        Raises:
            InstallError: If not installed
        """
        if not self._installed:
            raise InstallError("interrupt source not installed")

        self._installed = False
        self._stop_reader()
        self._release_handlers()
        self._lg.debug(
            "interrupt source uninstalled", extra={"restore_pending": self._restore_pending}
        )

    def _register_handlers(self) -> None:
        previous: dict[signal.Signals, Any] = {}
        try:
            for sig in self._events:
                previous[sig] = signal.signal(sig, self._handle_signal)
        except BaseException:
            for sig, handler in previous.items():
                signal.signal(sig, _restorable(handler))
            raise
        self._previous = previous

    def _release_handlers(self) -> None:
        """Restore handlers now on the main thread, otherwise on the next signal or install."""
        if threading.current_thread() is threading.main_thread():
            self._restore_handlers()
        else:
            self._restore_pending = True

    def _start_reader(self) -> None:
        if not self._keypresses:
            return
        stream = self._stream if self._stream is not None else sys.stdin
        if stream is None or not _is_tty(stream):
            return
        self._reader = KeypressReader(
            stream, self._handle_key, poll_interval=self._poll_interval, lg=self._lg
        )
        self._reader.start()

    def _stop_reader(self) -> None:
        reader, self._reader = self._reader, None
        if reader is not None:
            reader.stop()

    def _restore_handlers(self) -> None:
        for sig, handler in self._previous.items():
            signal.signal(sig, _restorable(handler))
        self._previous = {}
        self._restore_pending = False

    def _handle_signal(self, signum: int, frame: FrameType | None) -> None:
        if not self._installed:
            # handlers outlived an off-main-thread uninstall
            handler = self._previous.get(signal.Signals(signum))
            self._restore_handlers()
            self._redeliver(signum, frame, handler)
            return

        kind, method = self._events[signal.Signals(signum)]
        self._lg.debug("signal received", extra={"signal": signal.Signals(signum).name})
        self._dispatch(kind, method, False)

    def _handle_key(self, event: KeyEvent) -> None:
        if self._installed:
            self._dispatch(event.kind, event.method, True)

    def _redeliver(self, signum: int, frame: FrameType | None, handler: Any) -> None:
        """Pass a signal on to the handler that was active before install()."""
        handler = _restorable(handler)
        if handler is signal.SIG_IGN:
            return
        if callable(handler) and handler != self._handle_signal:
            handler(signum, frame)
            return
        if signal.getsignal(signum) == self._handle_signal:
            signal.signal(signum, signal.SIG_DFL)
        signal.raise_signal(signum)


def _is_tty(stream: TextIO) -> bool:
    try:
        return stream.isatty()
    except (AttributeError, ValueError):
        # closed or replaced stream
        return False


def _restorable(handler: Any) -> Any:
    """Handlers installed outside Python read back as None."""
    return signal.SIG_DFL if handler is None else handler
