"""
Per-component signal manager.

Each component of a process that cares about shutdown/info requests creates
its own ProcessSignalManager and attaches it. Any number of managers can be
attached at once; they share one set of OS signal handlers and one raw-mode
terminal session, and every attached manager receives every event.

Example:
    def on_shutdown(method):
        lg.info("shutting down", extra={"method": method})
        server.stop()

    def on_info():
        lg.info("stats", extra=server.stats())

    manager = ProcessSignalManager(on_shutdown, on_info)
    manager.attach()
    ...
    manager.detach()

    # or scoped
    with ProcessSignalManager(on_shutdown, on_info):
        server.serve_forever()
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from typing import Any

from . import callback as cb
from .config import DEFAULT_KEYPRESS_THROTTLE_MS, ManagerSettings
from .exceptions import ConfigError
from .registry import SignalRegistry
from .types import (
    AttachState,
    EventKind,
    HandlerStatus,
    ListeningStatus,
    ManagerStatus,
    ShutdownMethod,
)


class ProcessSignalManager:
    """
    Handle through which one component receives process signal events.

    Constructing a manager only stores its configuration; attach() and
    detach() are idempotent and may be called any number of times, including
    from inside one of the manager's own callbacks.

    Callback failures are isolated: they are logged, passed to
    on_callback_error if given, and never stop delivery to other managers.
    """

    def __init__(
        self,
        on_shutdown_requested: Callable[[ShutdownMethod | str], Any],
        on_info_requested: Callable[[], Any],
        *,
        on_reload_requested: Callable[[], Any] | None = None,
        on_debug_requested: Callable[[], Any] | None = None,
        keypress_throttle_ms: int = DEFAULT_KEYPRESS_THROTTLE_MS,
        keypresses: bool = True,
        callback_names: Mapping[str, str] | None = None,
        on_callback_error: cb.ErrorHook | None = None,
        name: str | None = None,
        registry: SignalRegistry | None = None,
        lg: Any | None = None,
    ) -> None:
        """
        Initialize the manager.

        Args:
            on_shutdown_requested: Called with the ShutdownMethod on SIGINT,
                SIGTERM, SIGTRAP, Ctrl+C/Escape, or trigger_shutdown()
            on_info_requested: Called on SIGUSR1, i/Ctrl+T, or trigger_info()
            on_reload_requested: Optional, called on SIGHUP, r, or trigger_reload()
            on_debug_requested: Optional, called on SIGUSR2, d, or trigger_debug()
            keypress_throttle_ms: Minimum interval between two keypress events
                of the same kind; 0 disables throttling. Signals are never
                throttled.
            keypresses: Whether this manager reacts to keypresses at all
            callback_names: Display names per event kind ("shutdown",
                "reload", "info", "debug") used in failure reports
            on_callback_error: Receives a CallbackError for every failure
            name: Name used in log messages (class name and id if None)
            registry: Registry to join (process-wide registry if None)
            lg: Logger (module logger if None)

        Raises:
            ConfigError: If a required callback is missing, any callback is not
                callable, or the throttle is negative
        """
        self._settings = ManagerSettings.from_dict(
            {
                "keypress_throttle_ms": keypress_throttle_ms,
                "keypresses": keypresses,
                "callback_names": dict(callback_names or {}),
            }
        )
        callbacks = {
            EventKind.SHUTDOWN: on_shutdown_requested,
            EventKind.INFO: on_info_requested,
            EventKind.RELOAD: on_reload_requested,
            EventKind.DEBUG: on_debug_requested,
        }
        _validate_callbacks(callbacks)
        if on_callback_error is not None and not callable(on_callback_error):
            raise ConfigError("on_callback_error must be callable")

        self._callbacks = {k: v for k, v in callbacks.items() if v is not None}
        self._on_callback_error = on_callback_error
        self._registry = registry
        self._lg = lg or logging.getLogger(__name__)
        self._name = name or f"{type(self).__name__}@{id(self):x}"
        self._state = AttachState.DETACHED
        self._last_keypress: dict[EventKind, float] = {}

    @classmethod
    def from_settings(
        cls,
        settings: ManagerSettings,
        on_shutdown_requested: Callable[[ShutdownMethod | str], Any],
        on_info_requested: Callable[[], Any],
        **kwargs: Any,
    ) -> ProcessSignalManager:
        """Create a manager from validated settings (see config.load_settings)."""
        return cls(
            on_shutdown_requested,
            on_info_requested,
            keypress_throttle_ms=settings.keypress_throttle_ms,
            keypresses=settings.keypresses,
            callback_names=settings.callback_names,
            **kwargs,
        )

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_attached(self) -> bool:
        """Current attachment state."""
        return self._state is AttachState.ATTACHED

    def attach(self) -> None:
        """
        Start receiving signal and keypress events.

        The first manager attached in the process installs the signal handlers
        and puts the terminal into raw mode. Does nothing if already attached.
        """
        if self._state is AttachState.ATTACHED:
            return
        self._get_registry()._attach(self)
        self._state = AttachState.ATTACHED

    def detach(self) -> None:
        """
        Stop receiving events.

        The last manager detached restores the previous signal handlers and
        terminal mode. Does nothing if not attached.
        """
        if self._state is AttachState.DETACHED:
            return
        try:
            self._get_registry()._detach(self)
        finally:
            self._state = AttachState.DETACHED

    def __enter__(self) -> ProcessSignalManager:
        self.attach()
        return self

    def __exit__(self, *args: Any) -> None:
        self.detach()

    def trigger_shutdown(
        self,
        method: ShutdownMethod | str = ShutdownMethod.MANUAL,
        *,
        bypass_attach_check: bool = False,
    ) -> None:
        """
        Invoke this manager's shutdown callback.

        Args:
            method: Tag passed to the callback
            bypass_attach_check: Call the callback even while detached
        """
        if self.is_attached or bypass_attach_check:
            self._deliver(EventKind.SHUTDOWN, _shutdown_method(method))

    def trigger_info(self, *, bypass_attach_check: bool = False) -> None:
        """Invoke this manager's info callback, if attached or bypassing the check."""
        if self.is_attached or bypass_attach_check:
            self._deliver(EventKind.INFO)

    def trigger_reload(self, *, bypass_attach_check: bool = False) -> None:
        """Invoke this manager's reload callback, if registered."""
        if self.is_attached or bypass_attach_check:
            self._deliver(EventKind.RELOAD)

    def trigger_debug(self, *, bypass_attach_check: bool = False) -> None:
        """Invoke this manager's debug callback, if registered."""
        if self.is_attached or bypass_attach_check:
            self._deliver(EventKind.DEBUG)

    def get_status(self) -> ManagerStatus:
        """Snapshot of registered handlers and what is being listened for."""
        attached = self.is_attached
        registry = self._registry or SignalRegistry.get_instance()
        handlers = HandlerStatus(
            shutdown=EventKind.SHUTDOWN in self._callbacks,
            reload=EventKind.RELOAD in self._callbacks,
            info=EventKind.INFO in self._callbacks,
            debug=EventKind.DEBUG in self._callbacks,
        )
        listening = ListeningStatus(
            shutdown_signals=attached and handlers.shutdown,
            reload_signal=attached and handlers.reload,
            info_signal=attached and handlers.info,
            debug_signal=attached and handlers.debug,
            keypresses=attached
            and self._settings.keypresses
            and registry.listening_for_keypresses,
        )
        return ManagerStatus(attached=attached, handlers=handlers, listening_for=listening)

    def _get_registry(self) -> SignalRegistry:
        if self._registry is None:
            self._registry = SignalRegistry.get_instance()
        return self._registry

    def _deliver(
        self,
        kind: EventKind,
        method: ShutdownMethod | str | None = None,
        keypress: bool = False,
    ) -> None:
        """Invoke the callback for one event; used by triggers and fan-out."""
        callback = self._callbacks.get(kind)
        if callback is None:
            return
        if keypress and (not self._settings.keypresses or self._throttled(kind)):
            return

        args = (method,) if kind is EventKind.SHUTDOWN else ()
        cb.safe_handle_callback(
            self._settings.callback_name(kind),
            callback,
            *args,
            lg=self._lg,
            on_error=self._on_callback_error,
        )

    def _throttled(self, kind: EventKind) -> bool:
        """Leading-edge throttle: the first press passes, repeats within the window do not."""
        interval = self._settings.keypress_throttle_ms / 1000.0
        if interval <= 0:
            return False
        now = time.monotonic()
        last = self._last_keypress.get(kind)
        if last is not None and now - last < interval:
            return True
        self._last_keypress[kind] = now
        return False

    def _mark_detached(self) -> None:
        self._state = AttachState.DETACHED

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._name} {self._state.value}>"


def _validate_callbacks(callbacks: dict[EventKind, Any]) -> None:
    for kind in (EventKind.SHUTDOWN, EventKind.INFO):
        if callbacks[kind] is None:
            raise ConfigError("callback is required", event=kind.value)
    for kind, func in callbacks.items():
        if func is not None and not callable(func):
            raise ConfigError("callback must be callable", event=kind.value)


def _shutdown_method(method: ShutdownMethod | str) -> ShutdownMethod | str:
    """Known tags become ShutdownMethod members; others pass through unchanged."""
    try:
        return ShutdownMethod(method)
    except ValueError:
        return method
