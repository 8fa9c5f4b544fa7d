"""Millisecond clocks shared by limiters, guards and the audit trail."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], float]


def system_clock() -> float:
    return time.time() * 1000.0


def to_datetime(instant_ms: float) -> datetime:
    return datetime.fromtimestamp(instant_ms / 1000.0, tz=timezone.utc)


class ManualClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start_ms: float = 1_700_000_000_000.0) -> None:
        self.now = float(start_ms)

    def __call__(self) -> float:
        return self.now

    def advance(self, delta_ms: float) -> float:
        self.now += delta_ms
        return self.now

    def set(self, instant_ms: float) -> None:
        self.now = float(instant_ms)
