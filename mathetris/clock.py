from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Time source abstraction.

    Core logic depends on this interface rather than calling real time directly.
    """

    def now(self) -> float:
        """Return monotonic seconds."""

    def wall_ms(self) -> int:
        """Return wall-clock milliseconds since the epoch."""


class RealClock:
    """Production clock backed by time.monotonic() and time.time()."""

    def now(self) -> float:
        return time.monotonic()

    def wall_ms(self) -> int:
        return int(time.time() * 1000)
