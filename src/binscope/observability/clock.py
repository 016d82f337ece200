"""Monotonic time source and wall-clock formatting for checkpoints and phase timing."""

from __future__ import annotations

import time
from datetime import datetime
from typing import Protocol


class Clock(Protocol):
    """Time source (injectable for tests)."""

    def monotonic(self) -> float: ...

    def now(self) -> datetime: ...


class SystemClock:
    """Process clock: ``time.monotonic`` for offsets, local time for display."""

    def monotonic(self) -> float:
        return time.monotonic()

    def now(self) -> datetime:
        return datetime.now().astimezone()


def format_wallclock(moment: datetime) -> str:
    """Render ``HH:MM:SS.mmm`` for a local timestamp."""

    millis = moment.microsecond // 1000
    return f"{moment.hour:02d}:{moment.minute:02d}:{moment.second:02d}.{millis:03d}"


__all__ = ["Clock", "SystemClock", "format_wallclock"]
