from __future__ import annotations

import time
from typing import Protocol


class FrameClock(Protocol):
    def now(self) -> float: ...


class MonotonicClock:
    """Wall-independent seconds for dwell and timeout bookkeeping."""

    def now(self) -> float:
        return time.monotonic()


class ManualClock:
    def __init__(self, start: float = 0.0) -> None:
        self._t = float(start)

    def now(self) -> float:
        return self._t

    def advance(self, seconds: float) -> float:
        self._t += float(seconds)
        return self._t


def elapsed(clock: FrameClock, since: float | None) -> float:
    if since is None:
        return 0.0
    return max(0.0, clock.now() - since)
