"""
Decoding of raw terminal input into manager events.

In raw mode the terminal no longer turns Ctrl+C into SIGINT, so the byte
stream is mapped here:

    Ctrl+C, Escape      shutdown (reported as SIGINT)
    r / R               reload
    i / I, Ctrl+T       info
    d / D               debug

Escape sequences (arrow keys, function keys, Alt+key) are skipped as a whole
so that they never read as a lone Escape.
"""

from dataclasses import dataclass

from .types import EventKind, ShutdownMethod

CTRL_C = 0x03
CTRL_T = 0x14
ESC = 0x1B

KEYMAP: dict[int, EventKind] = {
    CTRL_C: EventKind.SHUTDOWN,
    ord("r"): EventKind.RELOAD,
    ord("R"): EventKind.RELOAD,
    ord("i"): EventKind.INFO,
    ord("I"): EventKind.INFO,
    CTRL_T: EventKind.INFO,
    ord("d"): EventKind.DEBUG,
    ord("D"): EventKind.DEBUG,
}


@dataclass(frozen=True)
class KeyEvent:
    """One recognized keystroke."""

    kind: EventKind
    method: ShutdownMethod | None = None


def decode_keys(data: bytes) -> list[KeyEvent]:
    """
    Decode a chunk read from the terminal.

    Args:
        data: Bytes from a single read; an escape sequence is assumed not to
              be split across reads.

    Returns:
        Recognized events in input order
    """
    events: list[KeyEvent] = []
    i = 0
    n = len(data)
    while i < n:
        byte = data[i]
        if byte == ESC:
            if i + 1 == n:
                events.append(KeyEvent(EventKind.SHUTDOWN, ShutdownMethod.SIGINT))
                i += 1
            else:
                i = _skip_escape_sequence(data, i)
            continue

        kind = KEYMAP.get(byte)
        if kind is EventKind.SHUTDOWN:
            events.append(KeyEvent(kind, ShutdownMethod.SIGINT))
        elif kind is not None:
            events.append(KeyEvent(kind))
        i += 1
    return events


def _skip_escape_sequence(data: bytes, start: int) -> int:
    """Return the index just past the escape sequence starting at start."""
    n = len(data)
    i = start + 1
    intro = data[i]
    if intro == ord("["):
        # CSI: parameters and intermediates, then one final byte in 0x40-0x7E
        i += 1
        while i < n and not 0x40 <= data[i] <= 0x7E:
            i += 1
        return min(i + 1, n)
    if intro == ord("O"):
        # SS3: exactly one more byte
        return min(i + 2, n)
    # Alt+key
    return i + 1
