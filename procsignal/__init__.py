"""
Process-wide signal coordination for independent components.

Several parts of one process (a database manager, an HTTP server, a worker
pool) can each attach their own ProcessSignalManager to be told when a
graceful shutdown or a diagnostic dump is requested. They share a single set
of OS signal handlers and a single raw-mode terminal session, installed when
the first manager attaches and restored when the last one detaches.
"""

from importlib.metadata import PackageNotFoundError, version

from .callback import report_callback_error, safe_handle_callback
from .config import ManagerSettings, load_settings
from .exceptions import (
    CallbackError,
    ConfigError,
    InstallError,
    LifecycleError,
    SignalError,
)
from .keys import KeyEvent, decode_keys
from .manager import ProcessSignalManager
from .registry import SignalRegistry
from .serialize import (
    SerializedException,
    deserialize_error,
    is_error_like,
    serialize_error,
)
from .source import SharedInterruptSource
from .terminal import TerminalModeCoordinator
from .types import EventKind, ManagerStatus, ShutdownMethod

try:
    __version__ = version("procsignal")
except PackageNotFoundError:
    # Package not installed, use fallback (development mode)
    __version__ = "0.1.0-dev"

__all__ = [
    # Version
    "__version__",
    # Manager
    "ProcessSignalManager",
    "ManagerStatus",
    "ShutdownMethod",
    "EventKind",
    # Shared resources
    "SignalRegistry",
    "SharedInterruptSource",
    "TerminalModeCoordinator",
    "KeyEvent",
    "decode_keys",
    # Settings
    "ManagerSettings",
    "load_settings",
    # Callbacks
    "safe_handle_callback",
    "report_callback_error",
    # Error serialization
    "serialize_error",
    "deserialize_error",
    "is_error_like",
    "SerializedException",
    # Exceptions
    "SignalError",
    "ConfigError",
    "LifecycleError",
    "InstallError",
    "CallbackError",
]
