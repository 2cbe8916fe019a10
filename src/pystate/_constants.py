"""Internal constants shared across the library."""

CID_PREFIX = "state"

EXTRA_IGNORE = "ignore"
EXTRA_REJECT = "reject"
EXTRA_ALLOW = "allow"
EXTRA_PROPERTY_POLICIES: frozenset[str] = frozenset({EXTRA_IGNORE, EXTRA_REJECT, EXTRA_ALLOW})

# Type name that bypasses coercion and type matching.
ANY_TYPE = "any"

# Schema fragment attributes, collected base-first across the class hierarchy.
SCHEMA_FRAGMENTS: tuple[str, ...] = ("props", "session", "data_types", "children", "collections")

# Event names
CHANGE_EVENT = "change"
INVALID_EVENT = "invalid"
ALL_EVENT = "all"


def change_event(key: object) -> str:
    """Return the per-key change event name, e.g. ``change:name``."""
    return f"{CHANGE_EVENT}:{key}"
