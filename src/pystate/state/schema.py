"""Per-class schema resolution.

The schema of a concrete state class is built the first time the class is
instantiated and cached on the class itself. Declarations are collected from
the class bodies along the MRO, base first, and shallow-merged so the most
derived declaration of a name wins.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from pystate._constants import SCHEMA_FRAGMENTS
from pystate.datatypes import DataTypeRegistry
from pystate.exceptions import StateConfigError
from pystate.state.definition import PropertyDefinition, create_property_definition

_logger = logging.getLogger(__name__)

# Instance attributes and class-level declarations a property may not shadow.
RESERVED_NAMES: frozenset[str] = frozenset(
    {
        "cid",
        "parent",
        "validation_error",
        "attributes",
        "extra_properties",
        "config",
        "type_name",
        *SCHEMA_FRAGMENTS,
    }
)


@dataclass(frozen=True)
class OwnProperty:
    definition: PropertyDefinition


@dataclass(frozen=True)
class ChildEntity:
    factory: Callable[..., Any]


@dataclass(frozen=True)
class CollectionSlot:
    factory: Callable[..., Any]


Slot = OwnProperty | ChildEntity | CollectionSlot


@dataclass(frozen=True)
class Schema:
    """Resolved definitions, data types and dispatch slots of one class."""

    owner: type
    definitions: Mapping[Any, PropertyDefinition]
    data_types: DataTypeRegistry
    slots: Mapping[Any, Slot]
    children: Mapping[str, Callable[..., Any]]
    collections: Mapping[str, Callable[..., Any]]


class Accessor:
    """Class-level descriptor routing attribute access to ``get``/``set``."""

    def __init__(self, name: str) -> None:
        self.name = name

    def __get__(self, instance: Any, owner: type | None = None) -> Any:
        if instance is None:
            return self
        return instance.get(self.name)

    def __set__(self, instance: Any, value: Any) -> None:
        instance.set(self.name, value)

    def __delete__(self, instance: Any) -> None:
        instance.unset(self.name)


def collect_fragments(cls: type) -> dict[str, list[Mapping[Any, Any]]]:
    """Return the declarations of each fragment kind, base class first."""
    fragments: dict[str, list[Mapping[Any, Any]]] = {key: [] for key in SCHEMA_FRAGMENTS}
    for klass in reversed(cls.__mro__):
        for key in SCHEMA_FRAGMENTS:
            fragment = klass.__dict__.get(key)
            if not fragment:
                continue
            if not isinstance(fragment, Mapping):
                raise StateConfigError(f"{klass.__name__}.{key} must be a mapping, got {type(fragment).__name__}")
            fragments[key].append(fragment)
    return fragments


def _merge(fragments: list[Mapping[Any, Any]]) -> dict[Any, Any]:
    merged: dict[Any, Any] = {}
    for fragment in fragments:
        merged.update(fragment)
    return merged


def _check_name(cls: type, name: Any) -> None:
    if not isinstance(name, str):
        raise StateConfigError(f"Property names must be strings, got {name!r} on {cls.__name__}")
    if name in RESERVED_NAMES:
        raise StateConfigError(f"'{name}' is reserved and cannot be declared on {cls.__name__}")
    if name.startswith("_"):
        raise StateConfigError(f"'{name}' is private and cannot be declared on {cls.__name__}")
    existing = inspect.getattr_static(cls, name, None)
    if inspect.isroutine(existing) or isinstance(existing, property):
        raise StateConfigError(f"'{name}' would shadow {cls.__name__}.{name}")


def build_schema(cls: type) -> Schema:
    fragments = collect_fragments(cls)
    registry = DataTypeRegistry.merged(*fragments["data_types"])

    definitions: dict[Any, PropertyDefinition] = {}
    for kind, is_session in (("props", False), ("session", True)):
        for name, description in _merge(fragments[kind]).items():
            _check_name(cls, name)
            definitions[name] = create_property_definition(
                name, description, registry=registry, is_session=is_session
            )

    children = _merge(fragments["children"])
    collections = _merge(fragments["collections"])

    slots: dict[Any, Slot] = {}
    for name, definition in definitions.items():
        slots[name] = OwnProperty(definition)
    for nested, slot_type in ((children, ChildEntity), (collections, CollectionSlot)):
        for name, factory in nested.items():
            _check_name(cls, name)
            if name in slots:
                raise StateConfigError(f"'{name}' is declared more than once on {cls.__name__}")
            if not callable(factory):
                raise StateConfigError(f"Factory for '{name}' on {cls.__name__} is not callable")
            slots[name] = slot_type(factory)

    return Schema(
        owner=cls,
        definitions=MappingProxyType(definitions),
        data_types=registry,
        slots=MappingProxyType(slots),
        children=MappingProxyType(children),
        collections=MappingProxyType(collections),
    )


def resolve_schema(cls: type) -> Schema:
    """Return the schema of *cls*, building it and installing accessors once."""
    schema: Schema | None = cls.__dict__.get("_schema")
    if schema is not None:
        return schema

    schema = build_schema(cls)
    for name in schema.slots:
        setattr(cls, name, Accessor(name))
    cls._schema = schema  # type: ignore[attr-defined]
    _logger.debug(
        "Resolved schema for %s: %d properties, %d data types",
        cls.__name__,
        len(schema.definitions),
        len(schema.data_types),
    )
    return schema
