"""Time sources consumed by the lifecycle machine."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Protocol


class Clock(Protocol):
    """Seconds since the unix epoch, non-decreasing between reads."""

    def now(self) -> int: ...


class SystemClock:
    """Wall-clock time in whole UTC seconds."""

    def now(self) -> int:
        return int(datetime.now(UTC).timestamp())
