"""
Isolated invocation of subscriber callbacks.

A failing callback must never stop delivery to the other subscribers, and it
must never fail silently either: every failure is logged with the serialized
error attached and handed to an optional error hook.
"""

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any

from .exceptions import CallbackError
from .serialize import serialize_error

ErrorHook = Callable[[CallbackError], None]


def safe_handle_callback(
    callback_name: str,
    callback: Callable[..., Any],
    *args: Any,
    lg: Any | None = None,
    on_error: ErrorHook | None = None,
) -> bool:
    """
    Call a callback, reporting instead of raising any exception it throws.

    Callbacks returning an awaitable are scheduled on the running event loop
    when there is one (failures are reported when the task finishes), and
    otherwise run to completion before returning.

    Args:
        callback_name: Name used when reporting a failure
        callback: Callable to invoke
        *args: Arguments passed to the callback
        lg: Logger for failure reports (module logger if None)
        on_error: Hook receiving a CallbackError for each failure

    Returns:
        False if the callback raised synchronously, True otherwise
    """
    try:
        result = callback(*args)
        if inspect.isawaitable(result):
            _handle_awaitable(callback_name, result, lg, on_error)
    except Exception as e:
        report_callback_error(callback_name, e, lg=lg, on_error=on_error)
        return False
    return True


def report_callback_error(
    callback_name: str,
    error: BaseException,
    lg: Any | None = None,
    on_error: ErrorHook | None = None,
) -> CallbackError:
    """Log a callback failure and pass it to the error hook."""
    wrapped = CallbackError(callback_name, error)
    wrapped.__cause__ = error

    lg = lg or logging.getLogger(__name__)
    lg.error(
        "callback failed",
        extra={"callback": callback_name, "error": serialize_error(error)},
    )

    if on_error is not None:
        try:
            on_error(wrapped)
        except Exception as e:
            lg.error(
                "callback error hook failed",
                extra={"callback": callback_name, "error": serialize_error(e)},
            )
    return wrapped


def _handle_awaitable(
    callback_name: str, awaitable: Any, lg: Any | None, on_error: ErrorHook | None
) -> None:
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None

    if loop is None:
        asyncio.run(_as_coroutine(awaitable))
        return

    task = loop.create_task(_as_coroutine(awaitable))

    def _done(t: asyncio.Task) -> None:
        if t.cancelled():
            return
        exc = t.exception()
        if exc is not None:
            report_callback_error(callback_name, exc, lg=lg, on_error=on_error)

    task.add_done_callback(_done)


async def _as_coroutine(awaitable: Any) -> Any:
    return await awaitable
