"""Small value helpers used by the data types and the state engine."""

from __future__ import annotations

from collections.abc import Callable, Mapping, MutableMapping, MutableSequence, MutableSet
from datetime import datetime
from typing import Any, Final


class _Undefined:
    """Marker for "no value", distinct from ``None`` (which is a value)."""

    _instance: _Undefined | None = None

    def __new__(cls) -> _Undefined:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __bool__(self) -> bool:
        return False

    def __copy__(self) -> _Undefined:
        return self

    def __deepcopy__(self, memo: dict[int, Any]) -> _Undefined:
        return self


UNDEFINED: Final = _Undefined()


def is_undefined(value: Any) -> bool:
    return value is UNDEFINED


def type_of(value: Any) -> str:
    """Return the runtime type tag used for schema type matching."""
    if value is UNDEFINED:
        return "undefined"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, datetime):
        return "date"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, Mapping):
        return "object"
    if callable(value):
        return "function"
    return "object"


def resolve_value(value: Any) -> Any:
    """Return *value*, or the result of calling it when it is a producer."""
    if callable(value):
        return value()
    return value


def is_mutable_literal(value: Any) -> bool:
    """Return ``True`` for container literals that must not be shared as defaults."""
    return isinstance(value, (MutableMapping, MutableSequence, MutableSet))


def values_equal(current: Any, new: Any, key: Any = None) -> bool:
    """Default comparator used when a data type declares no ``compare``."""
    if current is new:
        return True
    if current is UNDEFINED or new is UNDEFINED:
        return False
    # True == 1 in Python; keep booleans distinct from numbers.
    if isinstance(current, bool) != isinstance(new, bool):
        return False
    return bool(current == new)


Comparator = Callable[[Any, Any, Any], bool]
