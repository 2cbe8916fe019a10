"""Typed, observable state objects.

Subclasses declare their schema in class bodies::

    class Person(State):
        type_name = "person"
        props = {
            "name": {"type": "string", "required": True},
            "born": "date",
        }
        session = {"active": {"type": "string", "values": ("yes", "no")}}

Every mutation goes through :meth:`State.set`, which coerces, validates and
records changes for all keys before committing any of them, then emits
``change:<key>`` per changed key and a single aggregate ``change``.
"""

from __future__ import annotations

import logging
import weakref
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, ClassVar, Literal, Self

from pystate._constants import (
    ALL_EVENT,
    ANY_TYPE,
    CHANGE_EVENT,
    EXTRA_ALLOW,
    EXTRA_IGNORE,
    EXTRA_REJECT,
    INVALID_EVENT,
    change_event,
)
from pystate._ids import unique_id
from pystate._utils import UNDEFINED, type_of, values_equal
from pystate.config import StateConfig, get_config
from pystate.datatypes import DataTypeRegistry
from pystate.events import Events
from pystate.exceptions import StateConfigError, StateSchemaError, StateValidationError
from pystate.state.definition import PropertyDefinition, create_property_definition
from pystate.state.schema import ChildEntity, CollectionSlot, OwnProperty, Schema, resolve_schema

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Change:
    key: Any
    previous: Any
    value: Any


class State(Events):
    """Base class of all state objects."""

    props: ClassVar[Mapping[str, Any]] = {}
    session: ClassVar[Mapping[str, Any]] = {}
    data_types: ClassVar[Mapping[str, Any]] = {}
    children: ClassVar[Mapping[str, Callable[..., Any]]] = {}
    collections: ClassVar[Mapping[str, Callable[..., Any]]] = {}

    extra_properties: ClassVar[str | None] = None
    """``"ignore"``, ``"reject"`` or ``"allow"``; ``None`` uses the active config."""

    config: ClassVar[StateConfig | None] = None
    type_name: ClassVar[str | None] = None

    _schema: ClassVar[Schema]

    def __init__(self, attrs: Mapping[str, Any] | None = None, *, parent: Any = None, **options: Any) -> None:
        schema = self.schema()
        self.cid = unique_id(self._config().id_prefix)
        self._parent_ref = weakref.ref(parent) if parent is not None else None
        self._values: dict[Any, Any] = {}
        self._extra_definitions: dict[Any, PropertyDefinition] = {}
        self._changed: dict[Any, Any] = {}
        self._previous_attributes: dict[Any, Any] = {}
        self._changing = False
        self._pending = False
        self.validation_error: Any = None

        self._children = {name: factory(parent=self) for name, factory in schema.children.items()}
        self._collections = {name: factory(parent=self) for name, factory in schema.collections.items()}
        for name, child in self._children.items():
            if isinstance(child, Events):
                child.on(ALL_EVENT, self._bubbling_handler(name))

        if attrs:
            self.set(attrs, silent=True, initial=True, **options)

    @classmethod
    def schema(cls) -> Schema:
        return resolve_schema(cls)

    @property
    def parent(self) -> Any:
        return self._parent_ref() if self._parent_ref is not None else None

    @property
    def _definition(self) -> Mapping[Any, PropertyDefinition]:
        return self._schema.definitions

    @property
    def _data_types(self) -> DataTypeRegistry:
        return self._schema.data_types

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.cid}>"

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def set(self, key: Any, value: Any = UNDEFINED, /, **options: Any) -> Self | Literal[False]:
        """Set one attribute (``set("a", 1)``) or several (``set({"a": 1})``).

        Options: ``silent`` suppresses events, ``unset`` removes the values
        instead of storing them, ``initial`` allows changing ``set_once``
        properties, ``validate`` runs :meth:`validate` first.

        Returns the instance, or ``False`` when pre-validation rejected the
        call. Raises :class:`StateValidationError`, :class:`StateSchemaError`
        or :class:`StateConfigError` without committing anything.
        """
        if isinstance(key, Mapping):
            attrs = dict(key)
        else:
            attrs = {key: value}

        if not self._validate(attrs, options):
            return False

        unset = options.get("unset", False)
        silent = options.get("silent", False)
        initial = options.get("initial", False)

        changing = self._changing
        self._changing = True
        try:
            if not changing:
                self._previous_attributes = self.get_attributes(props=True, session=True, raw=True)
                self._changed = {}

            changes: list[_Change] = []
            unchanged: list[Any] = []
            for attr, new_val in attrs.items():
                definition = self._definition_for_set(attr, new_val, options)
                if definition is None:
                    continue

                is_equal = self._get_compare_for_type(definition.type)
                data_type = self._data_types.resolve(definition.type)
                new_type = type_of(new_val)

                if data_type is not None and data_type.set is not None:
                    new_val, new_type = data_type.set(new_val)

                if definition.test is not None:
                    err = definition.test(self, new_val, new_type)
                    if err:
                        raise StateValidationError(
                            f"Property '{attr}' failed validation with error: {err}", key=attr, value=new_val
                        )

                self._check_constraints(attr, definition, new_val, new_type)

                current_val = self._values.get(attr, UNDEFINED)
                has_changed = not is_equal(current_val, new_val, attr)

                if definition.set_once and current_val is not UNDEFINED and has_changed and not initial:
                    raise StateValidationError(f"Property '{attr}' can only be set once.", key=attr, value=new_val)

                if has_changed:
                    changes.append(_Change(attr, current_val, new_val))
                else:
                    unchanged.append(attr)

            for attr in unchanged:
                self._changed.pop(attr, None)
            for change in changes:
                self._changed[change.key] = change.value
                self._previous_attributes[change.key] = change.previous
                if unset or change.value is UNDEFINED:
                    self._values.pop(change.key, None)
                else:
                    self._values[change.key] = change.value

            if not silent and changes:
                self._pending = True
            if not silent:
                for change in changes:
                    self.trigger(change_event(change.key), self, change.value, options)

            # Nested calls leave the aggregate event to the outermost one.
            if changing:
                return self
            if not silent:
                while self._pending:
                    self._pending = False
                    self.trigger(CHANGE_EVENT, self, options)
            return self
        finally:
            if not changing:
                self._pending = False
                self._changing = False

    def _definition_for_set(self, attr: Any, new_val: Any, options: Mapping[str, Any]) -> PropertyDefinition | None:
        """Return the definition for *attr*, or ``None`` when it is handled elsewhere."""
        slot = self._schema.slots.get(attr)
        if isinstance(slot, OwnProperty):
            return slot.definition
        if isinstance(slot, ChildEntity):
            self._children[attr].set(new_val, **options)
            return None
        if isinstance(slot, CollectionSlot):
            self._collections[attr].set(new_val, **options)
            return None

        definition = self._extra_definitions.get(attr)
        if definition is not None:
            return definition

        policy = self._extra_properties_policy()
        if policy == EXTRA_IGNORE:
            _logger.debug("Ignoring undeclared attribute %r on %s", attr, self)
            return None
        if policy == EXTRA_REJECT:
            type_name = self.type_name or "this"
            raise StateSchemaError(
                f'No "{attr}" property defined on {type_name} model and extra_properties not set to "ignore" or "allow"',
                key=attr,
                type_name=type_name,
            )
        if policy == EXTRA_ALLOW:
            definition = create_property_definition(attr, ANY_TYPE, registry=self._data_types)
            self._extra_definitions[attr] = definition
            return definition
        raise StateConfigError(f'Invalid value for extra_properties: "{policy}"')

    @staticmethod
    def _check_constraints(attr: Any, definition: PropertyDefinition, new_val: Any, new_type: str) -> None:
        if new_val is UNDEFINED and definition.required:
            raise StateValidationError(
                f"Required property '{attr}' must be of type {definition.type}. Tried to set {new_val!r}",
                key=attr,
                value=new_val,
            )
        if new_val is None and definition.required and not definition.allow_null:
            raise StateValidationError(
                f"Property '{attr}' must be of type {definition.type} (cannot be null). Tried to set {new_val!r}",
                key=attr,
                value=new_val,
            )
        if (
            definition.type
            and definition.type != ANY_TYPE
            and definition.type != new_type
            and new_val is not None
            and new_val is not UNDEFINED
        ):
            raise StateValidationError(
                f"Property '{attr}' must be of type {definition.type}. Tried to set {new_val!r}",
                key=attr,
                value=new_val,
            )
        if definition.values is not None and new_val is not UNDEFINED and new_val not in definition.values:
            allowed = ", ".join(str(v) for v in definition.values)
            raise StateValidationError(
                f"Property '{attr}' must be one of values: {allowed}. Tried to set {new_val!r}",
                key=attr,
                value=new_val,
            )

    def _get_compare_for_type(self, type_name: str | None) -> Callable[[Any, Any, Any], bool]:
        data_type = self._data_types.resolve(type_name)
        if data_type is not None and data_type.compare is not None:
            return data_type.compare
        return values_equal

    def _extra_properties_policy(self) -> str:
        policy = type(self).extra_properties
        if policy is None:
            return self._config().extra_properties
        return policy

    def _config(self) -> StateConfig:
        return type(self).config or get_config()

    def unset(self, names: Any, **options: Any) -> Self:
        """Remove attributes; required ones are reset to their default instead."""
        if isinstance(names, str) or not isinstance(names, Iterable):
            names = [names]
        for name in names:
            definition = self._lookup_definition(name)
            if definition is not None and definition.required:
                self.set(name, definition.resolve_default(), **options)
            else:
                self.set(name, UNDEFINED, **{**options, "unset": True})
        return self

    def clear(self, **options: Any) -> Self:
        """Unset every stored attribute."""
        return self.unset(list(self.get_attributes(props=True, session=True, raw=True)), **options)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self, attrs: Mapping[Any, Any], options: Mapping[str, Any]) -> Any:
        """Return an error for *attrs*, or a falsy value. Override in subclasses."""
        return None

    def _validate(self, attrs: Mapping[Any, Any], options: Mapping[str, Any]) -> bool:
        if not options.get("validate"):
            return True
        merged = {**self.get_attributes(props=True, session=True), **attrs}
        error = self.validate(merged, options)
        self.validation_error = error or None
        if not error:
            return True
        _logger.debug("Pre-validation rejected set on %s: %s", self, error)
        self.trigger(INVALID_EVENT, self, error, {**options, "validation_error": error})
        return False

    def is_valid(self) -> bool:
        return self._validate({}, {"validate": True})

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    def get(self, name: Any) -> Any:
        """Return the exposed value of *name*, materializing its default if unset."""
        slot = self._schema.slots.get(name)
        if isinstance(slot, ChildEntity):
            return self._children[name]
        if isinstance(slot, CollectionSlot):
            return self._collections[name]
        definition = slot.definition if isinstance(slot, OwnProperty) else self._extra_definitions.get(name)
        if definition is None:
            return None
        value = self._read(name, definition)
        return None if value is UNDEFINED else value

    def _read(self, name: Any, definition: PropertyDefinition) -> Any:
        data_type = self._data_types.resolve(definition.type)
        value = self._values.get(name, UNDEFINED)
        if value is UNDEFINED:
            value = definition.resolve_default()
            if value is UNDEFINED:
                return value
            # Materialized defaults are stored in the same form `set` stores.
            if data_type is not None and data_type.set is not None:
                coerced = data_type.set(value)
                if coerced.type == definition.type:
                    value = coerced.val
            self._values[name] = value
        if data_type is not None and data_type.get is not None:
            value = data_type.get(value)
        return value

    def _lookup_definition(self, name: Any) -> PropertyDefinition | None:
        slot = self._schema.slots.get(name)
        if isinstance(slot, OwnProperty):
            return slot.definition
        return self._extra_definitions.get(name)

    def _all_definitions(self) -> Iterable[tuple[Any, PropertyDefinition]]:
        yield from self._definition.items()
        yield from self._extra_definitions.items()

    def get_attributes(self, *, props: bool = False, session: bool = False, raw: bool = False) -> dict[Any, Any]:
        """Return the selected attributes.

        With ``raw`` the stored values are returned as-is and unset
        properties are left out; otherwise values are read like :meth:`get`.
        """
        result: dict[Any, Any] = {}
        for name, definition in self._all_definitions():
            if not ((session and definition.session) or (props and not definition.session)):
                continue
            value = self._values.get(name, UNDEFINED) if raw else self._read(name, definition)
            if value is not UNDEFINED:
                result[name] = value
        return result

    @property
    def attributes(self) -> dict[Any, Any]:
        return self.get_attributes(props=True, session=True)

    def serialize(self) -> dict[Any, Any]:
        """Return props (not session values) plus serialized children and collections."""
        result = self.get_attributes(props=True)
        for name, nested in {**self._children, **self._collections}.items():
            serialize = getattr(nested, "serialize", None)
            if callable(serialize):
                result[name] = serialize()
        return result

    # ------------------------------------------------------------------
    # Change inspection
    # ------------------------------------------------------------------

    def has_changed(self, name: Any = UNDEFINED) -> bool:
        """Whether the last ``set`` changed anything, or changed *name*."""
        if name is UNDEFINED:
            return bool(self._changed)
        return name in self._changed

    def changed_attributes(self, diff: Mapping[Any, Any] | None = None) -> dict[Any, Any]:
        """Return the changes of the last ``set``, or which of *diff* would change."""
        if diff is None:
            return dict(self._changed)
        old = self._previous_attributes if self._changing else self.get_attributes(props=True, session=True, raw=True)
        changed: dict[Any, Any] = {}
        for attr, value in diff.items():
            definition = self._lookup_definition(attr)
            if definition is None:
                continue
            is_equal = self._get_compare_for_type(definition.type)
            if not is_equal(old.get(attr, UNDEFINED), value, attr):
                changed[attr] = value
        return changed

    def previous(self, name: Any) -> Any:
        """Return the value *name* had before the last outermost ``set``."""
        value = self._previous_attributes.get(name, UNDEFINED)
        if value is UNDEFINED:
            return None
        definition = self._lookup_definition(name)
        data_type = self._data_types.resolve(definition.type) if definition is not None else None
        if data_type is not None and data_type.get is not None:
            return data_type.get(value)
        return value

    def previous_attributes(self) -> dict[Any, Any]:
        return {key: value for key, value in self._previous_attributes.items() if value is not UNDEFINED}

    # ------------------------------------------------------------------
    # Children
    # ------------------------------------------------------------------

    def _bubbling_handler(self, name: str) -> Callable[..., None]:
        prefix = f"{CHANGE_EVENT}:"

        def _bubble(event_name: str, *args: Any) -> None:
            if event_name.startswith(prefix):
                self.trigger(f"{prefix}{name}.{event_name[len(prefix):]}", *args)
            elif event_name == CHANGE_EVENT:
                options = args[1] if len(args) > 1 else {}
                self.trigger(CHANGE_EVENT, self, options)

        return _bubble
