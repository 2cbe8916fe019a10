"""Semantic data types for state properties.

A :class:`DataType` bundles the behaviour attached to a type name:

* ``set`` coerces an incoming value into its stored form and reports the
  resolved type tag that the schema type check compares against.
* ``get`` turns a stored value back into the exposed value on read.
* ``default`` produces the default for required properties.
* ``compare`` decides whether a new value equals the stored one.

Every member is optional. Built-in types are ``string``, ``date``,
``array`` and ``object``; ``any`` is not an entry, it bypasses coercion and
type matching altogether.
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from typing import Any, NamedTuple

from pystate._utils import UNDEFINED, type_of
from pystate.exceptions import StateConfigError


class Coerced(NamedTuple):
    """Result of a data type ``set``: stored value and resolved type tag."""

    val: Any
    type: str


@dataclass(frozen=True)
class DataType:
    """Coercion, read transform, default producer and comparator for one type."""

    set: Callable[[Any], Coerced] | None = None
    get: Callable[[Any], Any] | None = None
    default: Callable[[], Any] | None = None
    compare: Callable[[Any, Any, Any], bool] | None = None

    @classmethod
    def from_value(cls, entry: DataType | Mapping[str, Any]) -> DataType:
        """Accept a :class:`DataType` or a mapping with the same keys."""
        if isinstance(entry, DataType):
            return entry
        if isinstance(entry, Mapping):
            unknown = set(entry) - {"set", "get", "default", "compare"}
            if unknown:
                raise StateConfigError(f"Unknown data type keys: {', '.join(sorted(unknown))}")
            return cls(**entry)
        raise StateConfigError(f"Data type entry must be a DataType or a mapping, got {type(entry).__name__}")


# ---------------------------------------------------------------------------
# date
# ---------------------------------------------------------------------------

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_MICROSECOND = timedelta(microseconds=1)


def _to_epoch_ms(value: datetime) -> float:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return (value - _EPOCH) // _MICROSECOND / 1000


def _from_epoch_ms(value: float) -> datetime:
    return _EPOCH + round(value * 1000) * _MICROSECOND


def _in_range(epoch_ms: float | None) -> float | None:
    """Drop timestamps outside the years datetime can represent."""
    if epoch_ms is None:
        return None
    try:
        _from_epoch_ms(epoch_ms)
    except OverflowError:
        return None
    return epoch_ms


def _parse_int_timestamp(value: str) -> float | None:
    """Parse a leading integer the way ``parseInt`` does (``"12abc"`` -> 12)."""
    match = _LEADING_INT.match(value)
    if match is None:
        return None
    return float(int(match.group(1)))


def _parse_date(value: Any) -> float | None:
    """Return epoch milliseconds for *value*, or ``None`` when unparseable."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, date):
        return _to_epoch_ms(datetime(value.year, value.month, value.day, tzinfo=UTC))
    if not isinstance(value, str):
        return None
    try:
        return _to_epoch_ms(datetime.fromisoformat(value.strip()))
    except ValueError:
        return _parse_int_timestamp(value)


def _date_set(new_val: Any) -> Coerced:
    if new_val is None:
        return Coerced(new_val, "null")
    if isinstance(new_val, datetime):
        return Coerced(_to_epoch_ms(new_val), "date")
    epoch_ms = _in_range(_parse_date(new_val))
    if epoch_ms is None:
        # Left as-is; the schema type check rejects the mismatched tag.
        return Coerced(new_val, type_of(new_val))
    return Coerced(epoch_ms, "date")


def _date_get(val: Any) -> datetime | None:
    if val is None or isinstance(val, datetime):
        return val
    return _from_epoch_ms(val)


def _date_default() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# array / object
# ---------------------------------------------------------------------------


def _array_set(new_val: Any) -> Coerced:
    return Coerced(new_val, "array" if isinstance(new_val, (list, tuple)) else type_of(new_val))


def _object_set(new_val: Any) -> Coerced:
    new_type = type_of(new_val)
    if new_type != "object" and new_val is UNDEFINED:
        return Coerced(None, "object")
    return Coerced(new_val, new_type)


BASE_DATA_TYPES: Mapping[str, DataType] = {
    "string": DataType(default=lambda: ""),
    "date": DataType(set=_date_set, get=_date_get, default=_date_default),
    "array": DataType(set=_array_set, default=list),
    "object": DataType(set=_object_set, default=dict),
}


class DataTypeRegistry:
    """Name -> :class:`DataType` mapping for one concrete state class."""

    def __init__(self, base: Mapping[str, DataType | Mapping[str, Any]] | None = None) -> None:
        self._entries: dict[str, DataType] = {}
        if base:
            self.update(base)

    def register(self, name: str, entry: DataType | Mapping[str, Any]) -> None:
        """Add or override the entry for *name*."""
        self._entries[name] = DataType.from_value(entry)

    def update(self, fragment: Mapping[str, DataType | Mapping[str, Any]]) -> None:
        for name, entry in fragment.items():
            self.register(name, entry)

    def resolve(self, name: str | None) -> DataType | None:
        if name is None:
            return None
        return self._entries.get(name)

    @classmethod
    def merged(cls, *fragments: Mapping[str, DataType | Mapping[str, Any]]) -> DataTypeRegistry:
        """Build a registry from the built-ins overridden by *fragments* in order."""
        registry = cls(BASE_DATA_TYPES)
        for fragment in fragments:
            registry.update(fragment)
        return registry

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
