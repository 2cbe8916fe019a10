"""Process-wide identifier generation.

The counter starts at 1 when the module is imported and only ever grows.
It is guarded by a lock so identifiers stay unique if instances are built
from several threads.
"""

from __future__ import annotations

import itertools
import threading

_counter = itertools.count(1)
_lock = threading.Lock()


def unique_id(prefix: str = "") -> str:
    """Return the next process-unique identifier, e.g. ``state7``."""
    with _lock:
        value = next(_counter)
    return f"{prefix}{value}"
