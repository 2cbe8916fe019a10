"""Library configuration for pystate."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pystate._constants import CID_PREFIX, EXTRA_IGNORE, EXTRA_PROPERTY_POLICIES
from pystate.exceptions import StateConfigError

_ENV_CONFIG_MAP = {
    "PYSTATE_EXTRA_PROPERTIES": "extra_properties",
    "PYSTATE_ID_PREFIX": "id_prefix",
}


@dataclasses.dataclass(frozen=True)
class StateConfig:
    """Process-level defaults for state objects.

    Parameters
    ----------
    extra_properties : str
        Policy for attributes without a definition when a class does not
        declare its own ``extra_properties``: ``"ignore"``, ``"reject"``
        or ``"allow"``.
    id_prefix : str
        Prefix of the generated ``cid`` of every instance.
    """

    extra_properties: str = EXTRA_IGNORE
    id_prefix: str = CID_PREFIX

    def __post_init__(self) -> None:
        if self.extra_properties not in EXTRA_PROPERTY_POLICIES:
            raise StateConfigError(f'Invalid value for extra_properties: "{self.extra_properties}"')

    @classmethod
    def from_env(cls, **overrides: Any) -> StateConfig:
        """Create configuration from ``PYSTATE_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val.strip()

        config_kwargs.update(overrides)
        return cls(**config_kwargs)


_active_config: StateConfig | None = None


def get_config() -> StateConfig:
    """Return the process default configuration, reading the environment once."""
    global _active_config
    if _active_config is None:
        _active_config = StateConfig.from_env()
    return _active_config


def set_config(config: StateConfig | None) -> None:
    """Replace the process default; ``None`` re-reads the environment on next use."""
    global _active_config
    _active_config = config
