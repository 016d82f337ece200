"""
binscope — ordered enrichment pipeline.

File: src/binscope/enrichment/pipeline.py
Last updated: 2026-10-17

Purpose
- Run the post-mortem passes in their fixed order against the run's result record.

What should be included in this file
- ``default_passes()`` with the canonical order.
- ``EnrichmentPipeline`` that gates, announces and isolates every pass.

Functional requirements
- Later passes read fields written by earlier ones; the order is part of the contract.
- Every executed pass emits ``PASS: <name> start`` (FUNC) and then ``done`` or ``unavailable`` (MISC).
- No pass failure aborts the pipeline.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

import structlog

from binscope.domain.models import CheckpointCategory
from binscope.enrichment.base import EnrichmentContext, EnrichmentPass, EnrichmentUnavailable
from binscope.enrichment.binary import CrashBacktracePass, DebugProbePass, SymbolScanPass
from binscope.enrichment.classification import (
    BehaviorPatternPass,
    OutputComplexityPass,
    ResourceEfficiencyPass,
    TimingBreakdownPass,
    ToolClassificationPass,
    VerboseIntelligencePass,
)
from binscope.enrichment.language import FrameworkTaggingPass, LanguageDetectionPass
from binscope.enrichment.network import NetworkBehaviorPass
from binscope.enrichment.security import SecurityScoringPass

logger = structlog.get_logger(__name__)


def default_passes() -> tuple[EnrichmentPass, ...]:
    return (
        ToolClassificationPass(),
        TimingBreakdownPass(),
        OutputComplexityPass(),
        VerboseIntelligencePass(),
        BehaviorPatternPass(),
        ResourceEfficiencyPass(),
        SecurityScoringPass(),
        SymbolScanPass(),
        DebugProbePass(),
        CrashBacktracePass(),
        LanguageDetectionPass(),
        FrameworkTaggingPass(),
        NetworkBehaviorPass(),
    )


@dataclass(frozen=True, slots=True)
class PipelineReport:
    completed: tuple[str, ...] = ()
    unavailable: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()


@dataclass(slots=True)
class EnrichmentPipeline:
    passes: Sequence[EnrichmentPass] = field(default_factory=default_passes)

    def __post_init__(self) -> None:
        names = [item.name for item in self.passes]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"duplicate enrichment pass names: {', '.join(duplicates)}")

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(item.name for item in self.passes)

    def run(self, context: EnrichmentContext) -> PipelineReport:
        completed: list[str] = []
        unavailable: list[str] = []
        skipped: list[str] = []

        for enrichment_pass in self.passes:
            name = enrichment_pass.name
            if not enrichment_pass.applies(context):
                skipped.append(name)
                continue

            context.checkpoints.log(f"PASS: {name} start", CheckpointCategory.FUNC)
            try:
                enrichment_pass.run(context)
            except EnrichmentUnavailable as exc:
                self._unavailable(context, name, str(exc))
                unavailable.append(name)
                continue
            except Exception as exc:  # noqa: BLE001 - a broken pass must not abort the run
                logger.warning("enrichment pass failed", pass_name=name, exc_info=True)
                self._unavailable(context, name, f"{type(exc).__name__}: {exc}")
                unavailable.append(name)
                continue

            context.checkpoints.log(f"PASS: {name} done", CheckpointCategory.MISC)
            context.result.completed_passes.append(name)
            completed.append(name)

        logger.debug(
            "enrichment finished",
            completed=len(completed),
            unavailable=len(unavailable),
            skipped=len(skipped),
        )
        return PipelineReport(
            completed=tuple(completed), unavailable=tuple(unavailable), skipped=tuple(skipped)
        )

    @staticmethod
    def _unavailable(context: EnrichmentContext, name: str, reason: str) -> None:
        context.checkpoints.log(f"PASS: {name} unavailable", CheckpointCategory.MISC, reason)
        context.result.unavailable_passes.append(name)
        logger.info("enrichment pass unavailable", pass_name=name, reason=reason)


__all__ = ["EnrichmentPipeline", "PipelineReport", "default_passes"]
