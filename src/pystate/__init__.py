"""pystate - Typed, observable attribute containers."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pystate")
except PackageNotFoundError:
    __version__ = "0+local"
from pystate._utils import UNDEFINED
from pystate.config import StateConfig, get_config, set_config
from pystate.datatypes import BASE_DATA_TYPES, Coerced, DataType, DataTypeRegistry
from pystate.events import Events
from pystate.exceptions import (
    StateConfigError,
    StateError,
    StateSchemaError,
    StateValidationError,
)
from pystate.state import PropertyDefinition, State, create_property_definition, resolve_schema

__all__ = [
    "__version__",
    "BASE_DATA_TYPES",
    "Coerced",
    "DataType",
    "DataTypeRegistry",
    "Events",
    "PropertyDefinition",
    "State",
    "StateConfig",
    "StateConfigError",
    "StateError",
    "StateSchemaError",
    "StateValidationError",
    "UNDEFINED",
    "create_property_definition",
    "get_config",
    "resolve_schema",
    "set_config",
]
