from __future__ import annotations

from typing import Callable

import pytest

from vitals.events import Event
from vitals.processor import HarmonicProcessor


@pytest.fixture
def recorder() -> Callable[[HarmonicProcessor], list[Event]]:
    """Subscribe a list to a processor's events and return the list."""

    def attach(proc: HarmonicProcessor) -> list[Event]:
        seen: list[Event] = []
        proc.events.subscribe(seen.append)
        return seen

    return attach
