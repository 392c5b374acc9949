"""Injectable wall clocks (epoch milliseconds)."""

from __future__ import annotations

import time
from typing import Callable

# All windowing and expiry math is done in epoch milliseconds.
Clock = Callable[[], float]


def system_clock() -> float:
    """Current wall-clock time in epoch milliseconds."""
    return time.time() * 1000.0


class ManualClock:
    """Settable clock for tests and offline replays.

    Usage::

        clock = ManualClock(start_ms=0)
        pipeline = create_alert_pipeline(config, clock=clock)
        clock.advance(5_000)
    """

    def __init__(self, start_ms: float = 0.0) -> None:
        self._now = float(start_ms)

    def __call__(self) -> float:
        return self._now

    def advance(self, delta_ms: float) -> float:
        self._now += delta_ms
        return self._now

    def set(self, now_ms: float) -> None:
        self._now = float(now_ms)
