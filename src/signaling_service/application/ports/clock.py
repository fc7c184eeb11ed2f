from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    def now_ms(self) -> int: ...


class SystemClock:
    """Wall-clock milliseconds, comparable across both peers."""

    def now_ms(self) -> int:
        return time.time_ns() // 1_000_000
