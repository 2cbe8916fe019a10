from __future__ import annotations

from collections.abc import Iterator

import pytest

from pystate.config import set_config


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.delenv("PYSTATE_EXTRA_PROPERTIES", raising=False)
    monkeypatch.delenv("PYSTATE_ID_PREFIX", raising=False)
    set_config(None)
    yield
    set_config(None)
