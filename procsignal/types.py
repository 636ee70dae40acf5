"""
Value types shared by the signal manager components.
"""

from dataclasses import dataclass
from enum import Enum


class ShutdownMethod(str, Enum):
    """
    What caused a shutdown request.

    Members are str subclasses, so callbacks may compare against the plain
    tag (``method == "SIGTERM"``) and new tags never change the callback
    signature.
    """

    SIGINT = "SIGINT"
    SIGTERM = "SIGTERM"
    SIGTRAP = "SIGTRAP"
    MANUAL = "MANUAL"

    def __str__(self) -> str:
        return self.value


class EventKind(str, Enum):
    """Notification kinds fanned out to attached managers."""

    SHUTDOWN = "shutdown"
    RELOAD = "reload"
    INFO = "info"
    DEBUG = "debug"

    def __str__(self) -> str:
        return self.value


class AttachState(Enum):
    """Attachment state of a single manager."""

    DETACHED = "detached"
    ATTACHED = "attached"


@dataclass(frozen=True)
class HandlerStatus:
    """Which optional callbacks a manager was given."""

    shutdown: bool
    reload: bool
    info: bool
    debug: bool


@dataclass(frozen=True)
class ListeningStatus:
    """What a manager currently receives (all False while detached)."""

    shutdown_signals: bool
    reload_signal: bool
    info_signal: bool
    debug_signal: bool
    keypresses: bool


@dataclass(frozen=True)
class ManagerStatus:
    """Snapshot returned by ProcessSignalManager.get_status()."""

    attached: bool
    handlers: HandlerStatus
    listening_for: ListeningStatus
