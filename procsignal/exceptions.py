"""
Exception hierarchy for procsignal.

Every error raised by the library derives from SignalError, so callers can
catch all of them with a single except clause.
"""

from typing import Any


class SignalError(Exception):
    """
    Base exception for all procsignal errors.

    Example:
        try:
            manager.attach()
        except SignalError as e:
            lg.error("attach failed", extra={"exception": e})
    """

    def __init__(self, message: str, **context: Any) -> None:
        """
        Initialize the exception with a message and optional context.

        Args:
            message: Human-readable error message
            **context: Additional context information (stored in self.context)
        """
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        """String representation with context if available."""
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} ({context_str})"
        return self.message


class ConfigError(SignalError):
    """
    Configuration-related errors.

    Examples:
        - Required callback missing or not callable
        - Negative keypress throttle
        - Settings file missing or not valid YAML
    """

    pass


class LifecycleError(SignalError):
    """
    Attach/detach bookkeeping went out of balance.

    Raised when raw mode is released more times than it was acquired. This
    always points at a lifecycle bug in the caller, never at a runtime
    condition that can be recovered from.
    """

    pass


class InstallError(SignalError):
    """
    The shared interrupt source was installed twice or removed while absent.
    """

    pass


class CallbackError(SignalError):
    """
    A subscriber callback raised while being dispatched.

    The original exception is available as __cause__ and in context["error"].
    """

    def __init__(self, callback_name: str, error: BaseException) -> None:
        super().__init__(
            f"error in callback {callback_name}: {error}",
            callback=callback_name,
            error=type(error).__name__,
        )
        self.callback_name = callback_name
        self.error = error
