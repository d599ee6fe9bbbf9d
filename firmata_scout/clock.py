"""Time source used by everything that waits."""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    def monotonic(self) -> float:
        """Seconds from an arbitrary fixed origin."""

    def sleep(self, seconds: float) -> None:
        """Block for the given number of seconds."""


class SystemClock:
    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


def sleep_ms(clock: Clock, ms: int) -> None:
    clock.sleep(ms / 1000)
