"""Shared fakes for the unit test packages."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from binscope.config import AnalyzerSettings, RunConfig
from binscope.domain.models import ExecutionMode, Feature

FIXED_NOW = datetime(2026, 10, 17, 9, 30, 0)


@dataclass(slots=True)
class FakeClock:
    """Deterministic clock; every ``monotonic()`` call advances by ``step``."""

    start: float = 100.0
    step: float = 0.001
    _ticks: int = 0

    def monotonic(self) -> float:
        value = self.start + self._ticks * self.step
        self._ticks += 1
        return value

    def now(self) -> datetime:
        return FIXED_NOW + timedelta(seconds=self._ticks * self.step)


@dataclass(slots=True)
class FakeSampler:
    """Process sampler replaying canned RSS readings and connections."""

    rss_readings: Sequence[int] = ()
    connections: tuple[str, ...] = ()
    calls: list[int] = field(default_factory=list)

    def rss_kb(self, pid: int) -> int | None:
        self.calls.append(pid)
        if not self.rss_readings:
            return None
        index = min(len(self.calls) - 1, len(self.rss_readings) - 1)
        return self.rss_readings[index]

    def established_connections(self, pid: int) -> tuple[str, ...]:
        return self.connections


def make_config(
    target: str = "/usr/bin/true",
    argv: Sequence[str] = (),
    *,
    mode: ExecutionMode = ExecutionMode.DIRECT_EXEC,
    features: Sequence[Feature] = (Feature.MEMORY, Feature.IO),
    settings: AnalyzerSettings | None = None,
    **kwargs: object,
) -> RunConfig:
    return RunConfig(
        target_path=target,
        target_argv=tuple(argv),
        mode=mode,
        features=frozenset(features),
        force_execution=mode.executes_target,
        settings=settings if settings is not None else AnalyzerSettings(),
        **kwargs,  # type: ignore[arg-type]
    )


__all__ = ["FIXED_NOW", "FakeClock", "FakeSampler", "make_config"]
