"""Property declarations and the immutable definitions built from them.

A declaration is either a bare type name (``"string"``) or a mapping::

    {"type": "date", "required": True, "set_once": True}

camelCase spellings (``allowNull``, ``setOnce``) are accepted as well, so
schemas written for other clients of the same data keep working.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from pystate._constants import ANY_TYPE
from pystate._utils import UNDEFINED, is_mutable_literal, resolve_value
from pystate.datatypes import DataTypeRegistry
from pystate.exceptions import StateConfigError

_logger = logging.getLogger(__name__)


class PropertyDescriptor(BaseModel):
    """Validated form of a single property declaration."""

    model_config = ConfigDict(
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
        arbitrary_types_allowed=True,
    )

    type: str | None = None
    required: bool = False
    allow_null: bool = False
    default: Any = UNDEFINED
    set_once: bool = False
    test: Callable[..., Any] | None = None
    values: tuple[Any, ...] | None = None


class PropertyDefinition(BaseModel):
    """Resolved definition of one property of a concrete state class.

    ``type`` is ``None`` for untyped properties. ``default`` is ``UNDEFINED``
    when the property has no default, otherwise a literal or a zero-argument
    producer. ``test`` is called as ``test(state, value, value_type)`` and
    returns an error message or a falsy value.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: Any
    type: str | None = None
    required: bool = False
    allow_null: bool = False
    default: Any = UNDEFINED
    set_once: bool = False
    test: Callable[..., Any] | None = None
    values: tuple[Any, ...] | None = None
    session: bool = False

    @property
    def has_default(self) -> bool:
        return self.default is not UNDEFINED

    def resolve_default(self) -> Any:
        """Return the default value, calling the producer if there is one."""
        return resolve_value(self.default)


def _ensure_valid_type(name: Any, type_name: str | None, registry: DataTypeRegistry) -> str | None:
    if type_name is None:
        return None
    if type_name == ANY_TYPE or type_name in registry:
        return type_name
    _logger.debug("Dropping unknown type %r of property %r", type_name, name)
    return None


def create_property_definition(
    name: Any,
    description: str | Mapping[str, Any],
    *,
    registry: DataTypeRegistry,
    is_session: bool = False,
) -> PropertyDefinition:
    """Build the definition of *name* from its declaration.

    Unknown type names are dropped, leaving the property untyped. A required
    property without an explicit default (and without ``set_once``) takes the
    default producer of its type.

    Raises
    ------
    StateConfigError
        If the declaration is malformed or its default is a mutable
        container literal instead of a producer.
    """
    if isinstance(description, str):
        description = {"type": description}
    elif not isinstance(description, Mapping):
        raise StateConfigError(
            f"Declaration of property '{name}' must be a type name or a mapping, got {type(description).__name__}"
        )

    if is_mutable_literal(description.get("default")):
        raise StateConfigError(
            f"The default value for {name} cannot be a dict/list/set, "
            "must be a value or a function which returns a value/dict/list/set"
        )

    try:
        descriptor = PropertyDescriptor.model_validate(description)
    except ValidationError as exc:
        raise StateConfigError(f"Invalid declaration for property '{name}': {exc}") from exc

    prop_type = _ensure_valid_type(name, descriptor.type, registry)
    default = descriptor.default
    if descriptor.required and default is UNDEFINED and not descriptor.set_once:
        data_type = registry.resolve(prop_type)
        if data_type is not None and data_type.default is not None:
            default = data_type.default

    return PropertyDefinition(
        name=name,
        type=prop_type,
        required=descriptor.required,
        allow_null=descriptor.allow_null,
        default=default,
        set_once=descriptor.set_once,
        test=descriptor.test,
        values=descriptor.values,
        session=is_session,
    )
