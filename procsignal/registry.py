"""
Process-wide registry of attached signal managers.

The registry is the only owner of the shared state: the ordered set of
attached managers, the raw-mode reference count (through the terminal
coordinator) and the interrupt source. Managers reach it through their
attach()/detach() calls only.

Fan-out and membership changes never overlap. Anything that arrives while
the registry is busy (an attach/detach made from inside a callback, a signal
landing in the middle of an attach, a second event during a fan-out) is
queued and processed, in arrival order, once the current operation is done.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Optional, TextIO

from .serialize import serialize_error
from .source import SharedInterruptSource
from .terminal import TerminalModeCoordinator
from .types import EventKind, ShutdownMethod

if TYPE_CHECKING:
    from .manager import ProcessSignalManager

SourceFactory = Callable[..., SharedInterruptSource]


class SignalRegistry:
    """
    Singleton coordinating all ProcessSignalManager instances.

    Example:
        >>> registry = SignalRegistry.get_instance()
        >>> registry.is_installed
        False
        >>> manager.attach()
        >>> registry.is_installed, registry.raw_refcount
        (True, 1)
    """

    _instance: Optional["SignalRegistry"] = None
    _lock_class = threading.Lock()

    def __init__(
        self,
        stream: TextIO | None = None,
        terminal: TerminalModeCoordinator | None = None,
        source_factory: SourceFactory | None = None,
        lg: Any | None = None,
    ) -> None:
        """
        Initialize the registry (private - use get_instance()).

        Args:
            stream: Terminal input stream (sys.stdin if None)
            terminal: Raw-mode coordinator (one is created for stream if None)
            source_factory: Builds the interrupt source from
                            (dispatch, stream=..., lg=...)
            lg: Logger (module logger if None)
        """
        self._lg = lg or logging.getLogger(__name__)
        self._lock = threading.RLock()
        self._members: list[ProcessSignalManager] = []
        self._busy = False
        self._pending: deque[Callable[[], None]] = deque()
        self._terminal = terminal or TerminalModeCoordinator(stream, lg=self._lg)
        factory = source_factory or SharedInterruptSource
        self._source = factory(self._dispatch, stream=stream, lg=self._lg)

    @classmethod
    def get_instance(cls) -> SignalRegistry:
        """
        Get the process-wide registry.

        Thread-safe lazy initialization; creating the registry touches no
        signal handler and no terminal setting.
        """
        if cls._instance is None:
            with cls._lock_class:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """
        Tear down and drop the registry (for testing only).

        Every attached manager is marked detached, the interrupt source is
        removed and raw mode is restored.
        """
        with cls._lock_class:
            if cls._instance is not None:
                cls._instance._teardown()
            cls._instance = None

    # ------------------------------------------------------------------
    # Read-only queries
    # ------------------------------------------------------------------

    @property
    def members(self) -> tuple[ProcessSignalManager, ...]:
        """Attached managers in attach order."""
        with self._lock:
            return tuple(self._members)

    @property
    def is_installed(self) -> bool:
        return self._source.installed

    @property
    def raw_refcount(self) -> int:
        return self._terminal.refcount

    @property
    def is_raw(self) -> bool:
        return self._terminal.is_raw

    @property
    def listening_for_keypresses(self) -> bool:
        return self._source.listening_for_keypresses

    def is_member(self, manager: ProcessSignalManager) -> bool:
        with self._lock:
            return manager in self._members

    # ------------------------------------------------------------------
    # Entry points (used by ProcessSignalManager)
    # ------------------------------------------------------------------

    def _attach(self, manager: ProcessSignalManager) -> None:
        self._run_or_queue(lambda: self._apply_attach(manager), deferred_failure=manager)

    def _detach(self, manager: ProcessSignalManager) -> None:
        self._run_or_queue(lambda: self._apply_detach(manager))

    def _dispatch(
        self, kind: EventKind, method: ShutdownMethod | None, keypress: bool
    ) -> None:
        self._run_or_queue(lambda: self._fan_out(kind, method, keypress))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run_or_queue(
        self,
        op: Callable[[], None],
        deferred_failure: ProcessSignalManager | None = None,
    ) -> None:
        with self._lock:
            if self._busy:
                self._pending.append(self._guarded(op, deferred_failure))
                return

            self._busy = True
            try:
                op()
            finally:
                try:
                    self._drain()
                finally:
                    self._busy = False

    def _guarded(
        self, op: Callable[[], None], manager: ProcessSignalManager | None
    ) -> Callable[[], None]:
        """Queued operations have no caller left to raise to."""

        def run() -> None:
            try:
                op()
            except Exception as e:
                self._lg.error(
                    "queued signal registry operation failed",
                    extra={"error": serialize_error(e)},
                )
                if manager is not None:
                    manager._mark_detached()

        return run

    def _drain(self) -> None:
        while self._pending:
            self._pending.popleft()()

    def _apply_attach(self, manager: ProcessSignalManager) -> None:
        if manager in self._members:
            return

        self._terminal.acquire()
        try:
            if not self._members:
                self._source.install()
        except BaseException:
            self._terminal.release()
            raise

        self._members.append(manager)
        self._lg.debug(
            "signal manager attached",
            extra={"manager": manager.name, "attached": len(self._members)},
        )

    def _apply_detach(self, manager: ProcessSignalManager) -> None:
        if manager not in self._members:
            return

        self._members.remove(manager)
        try:
            if not self._members:
                self._source.uninstall()
        finally:
            self._terminal.release()
        self._lg.debug(
            "signal manager detached",
            extra={"manager": manager.name, "attached": len(self._members)},
        )

    def _fan_out(
        self, kind: EventKind, method: ShutdownMethod | None, keypress: bool
    ) -> None:
        members = tuple(self._members)
        self._lg.debug(
            "dispatching signal event",
            extra={"event": kind.value, "method": method, "managers": len(members)},
        )
        for manager in members:
            manager._deliver(kind, method, keypress=keypress)

    def _teardown(self) -> None:
        with self._lock:
            self._pending.clear()
            members, self._members = self._members, []
            for manager in members:
                manager._mark_detached()
            if self._source.installed:
                self._source.uninstall()
            while self._terminal.refcount > 0:
                self._terminal.release()
