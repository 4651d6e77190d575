from __future__ import annotations

import pytest

from .helpers import EVENTS


@pytest.fixture(autouse=True)
def _reset_events():
    EVENTS.clear()
    yield
    EVENTS.clear()
