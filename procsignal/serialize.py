"""
Conversion of exceptions to and from plain, JSON-serializable records.

Callbacks use this to log a caught failure as structured data or to ship it
across a process boundary and re-raise it on the other side:

    record = serialize_error(exc)
    queue.put(json.dumps(record))
    ...
    raise deserialize_error(json.loads(payload))

A record always has "name" and "message", usually "stack", plus every
attribute set on the exception instance. Nested exceptions (including a
chained __cause__) are serialized recursively. Values JSON has no type for
become the closest plain form: sets become lists, bytes are decoded, plain
objects become a dict of their attributes, anything else its str().
"""

import traceback
from collections.abc import Mapping
from enum import Enum
from typing import Any

_ERROR_KEYS = ("name", "message", "stack")
_CIRCULAR = "[Circular]"


class SerializedException(Exception):
    """
    Exception rebuilt from a serialized record.

    The original class is not recreated; its name is kept in ``name`` and the
    formatted traceback of the original in ``stack``.
    """

    def __init__(self, message: str, name: str = "Error", stack: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.name = name
        self.stack = stack

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"{self.name}({self.message!r})"


def is_error_like(value: Any) -> bool:
    """
    Check whether a value should be serialized as an error.

    True for exception instances, and for mappings or objects that carry
    ``name``, ``message`` and ``stack``.
    """
    if isinstance(value, BaseException):
        return True
    if isinstance(value, Mapping):
        return all(key in value for key in _ERROR_KEYS)
    return all(hasattr(value, key) for key in _ERROR_KEYS)


def serialize_error(error: Any) -> dict[str, Any]:
    """
    Convert an exception (or error-like value, or anything else) to a record.

    Args:
        error: Value to convert

    Returns:
        Record with at least "name" and "message". Values that are not
        error-like become ``{"name": "Error", "message": str(error)}``.
    """
    return _serialize_error(error, set())


def deserialize_error(record: Mapping[str, Any]) -> SerializedException:
    """
    Turn a serialized record back into a raisable exception.

    Every key besides name/message/stack becomes an attribute of the result.
    """
    rest = {k: v for k, v in record.items() if k not in _ERROR_KEYS}
    error = SerializedException(
        str(record.get("message", "")),
        name=str(record.get("name", "Error")),
        stack=record.get("stack"),
    )
    for key, value in rest.items():
        if key.startswith("__") or key == "args":
            continue
        setattr(error, key, value)
    return error


def _serialize_error(error: Any, seen: set[int]) -> dict[str, Any]:
    if isinstance(error, BaseException):
        seen = seen | {id(error)}
        result = _exception_head(error)
        for key, value in vars(error).items():
            if key not in _ERROR_KEYS:
                result[key] = value
        if error.__cause__ is not None and "cause" not in result:
            result["cause"] = error.__cause__
        return _serialize_record(result, seen)

    if isinstance(error, Mapping) and is_error_like(error):
        return _serialize_record(dict(error), seen | {id(error)})

    if is_error_like(error):
        result = {key: getattr(error, key) for key in _ERROR_KEYS}
        for key, value in getattr(error, "__dict__", {}).items():
            result.setdefault(key, value)
        return _serialize_record(result, seen | {id(error)})

    return {"name": "Error", "message": str(error)}


def _exception_head(error: BaseException) -> dict[str, Any]:
    if isinstance(error, SerializedException):
        head: dict[str, Any] = {"name": error.name, "message": error.message}
        if error.stack is not None:
            head["stack"] = error.stack
        return head

    return {
        "name": type(error).__name__,
        "message": str(error),
        "stack": "".join(traceback.format_exception(error)),
    }


def _serialize_record(record: dict[str, Any], seen: set[int]) -> dict[str, Any]:
    return {str(key): _serialize_value(value, seen) for key, value in record.items()}


def _serialize_value(value: Any, seen: set[int]) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="backslashreplace")
    if id(value) in seen:
        return _CIRCULAR
    if is_error_like(value):
        return _serialize_error(value, seen)
    inner = seen | {id(value)}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_serialize_value(v, inner) for v in value]
    if isinstance(value, Mapping):
        return {str(k): _serialize_value(v, inner) for k, v in value.items()}
    if isinstance(value, Enum):
        return _serialize_value(value.value, inner)
    if hasattr(value, "__dict__") and not isinstance(value, type) and not callable(value):
        return {str(k): _serialize_value(v, inner) for k, v in vars(value).items()}
    return str(value)
