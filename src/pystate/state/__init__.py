"""State engine.

Schema resolution, typed mutation with change tracking, and retrieval for
:class:`~pystate.state.base.State` subclasses.
"""

from pystate.state.base import State
from pystate.state.definition import PropertyDefinition, PropertyDescriptor, create_property_definition
from pystate.state.schema import ChildEntity, CollectionSlot, OwnProperty, Schema, resolve_schema

__all__ = [
    "ChildEntity",
    "CollectionSlot",
    "OwnProperty",
    "PropertyDefinition",
    "PropertyDescriptor",
    "Schema",
    "State",
    "create_property_definition",
    "resolve_schema",
]
