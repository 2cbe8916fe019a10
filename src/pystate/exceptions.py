"""Custom exception hierarchy for pystate."""

from __future__ import annotations

from typing import Any


class StateError(Exception):
    """Base exception for all pystate errors."""


class StateConfigError(StateError):
    """Malformed schema declaration or invalid configuration value."""


class StateSchemaError(StateConfigError):
    """An attribute has no definition and extra properties are rejected."""

    def __init__(
        self,
        message: str,
        *,
        key: Any = None,
        type_name: str = "",
    ) -> None:
        self.key = key
        self.type_name = type_name
        super().__init__(message)


class StateValidationError(StateError):
    """A value failed coercion, a constraint or a custom ``test`` hook.

    Raised from :meth:`pystate.State.set` before anything is committed, so
    the instance keeps the values it had before the call.
    """

    def __init__(
        self,
        message: str,
        *,
        key: Any = None,
        value: Any = None,
    ) -> None:
        self.key = key
        self.value = value
        super().__init__(message)
