"""Fakes shared by the enrichment pass tests."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from binscope.domain.models import AnalysisResult, ExecutionMode, Feature
from binscope.enrichment.base import (
    EnrichmentContext,
    EnrichmentUnavailable,
    ToolResult,
    ToolSpec,
)
from binscope.observability.checkpoints import CheckpointLog

from .. import FakeClock, make_config


@dataclass(slots=True)
class FakeToolRunner:
    """Answer helper invocations from a table keyed by program name.

    Keys are either ``"program"`` or ``"program first-arg"`` (the latter wins). A value may be
    stdout text, a ``ToolResult`` or an exception to raise. Programs missing from the table
    behave like helpers that are not installed.
    """

    responses: Mapping[str, str | ToolResult | Exception] = field(default_factory=dict)
    specs: list[ToolSpec] = field(default_factory=list)

    def run(self, spec: ToolSpec) -> ToolResult:
        self.specs.append(spec)
        response = self.responses.get(" ".join(spec.argv[:2]), self.responses.get(spec.program))
        if response is None:
            raise EnrichmentUnavailable(f"{spec.program} is not installed")
        if isinstance(response, Exception):
            raise response
        if isinstance(response, ToolResult):
            return response
        return ToolResult(argv=spec.argv, exit_code=0, stdout=response)

    @property
    def programs(self) -> list[str]:
        return [spec.program for spec in self.specs]


def make_context(
    target: str = "/usr/bin/true",
    argv: Sequence[str] = (),
    *,
    features: Sequence[Feature] = tuple(Feature),
    mode: ExecutionMode = ExecutionMode.DIRECT_EXEC,
    runner: FakeToolRunner | None = None,
    exit_code: int = 0,
    execution_time: float = 0.01,
    ran: bool = True,
) -> EnrichmentContext:
    config = make_config(target, argv, mode=mode, features=features)
    result = AnalysisResult(target_path=target, target_argv=tuple(argv))
    result.execution.exit_code = exit_code
    result.execution.execution_time = execution_time
    result.execution.ran = ran
    return EnrichmentContext(
        config=config,
        result=result,
        checkpoints=CheckpointLog(clock=FakeClock()),
        runner=runner if runner is not None else FakeToolRunner(),
    )


def checkpoint_ids(context: EnrichmentContext) -> list[str]:
    return [entry.id for entry in context.checkpoints.entries()]


__all__ = ["FakeToolRunner", "checkpoint_ids", "make_context"]
