"""Post-mortem profile passes: tool class, timing split, complexity, behavior, efficiency."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Final

from binscope.domain.models import Classification, IoStats, ToolClass
from binscope.enrichment.base import PROFILE_GATE, EnrichmentContext, FeatureGatedPass
from binscope.enrichment.signatures import MarkerRule

# (startup, processing) shares; cleanup takes the remainder so the phases sum exactly.
_PHASE_SHARES: Final[dict[ToolClass, tuple[float, float]]] = {
    ToolClass.COMPILER: (0.05, 0.90),
    ToolClass.INTERPRETER: (0.30, 0.60),
}
_DEFAULT_PHASE_SHARES: Final[tuple[float, float]] = (0.10, 0.80)

FAST_EXECUTION_SECONDS: Final[float] = 0.1
LONG_RUNNING_SECONDS: Final[float] = 5.0
FILE_UTILITY_OPERATION_SCORE: Final[int] = 6
COMPILER_INTELLIGENCE_FLOOR: Final[int] = 8


def split_execution_time(total: float, tool_class: ToolClass) -> tuple[float, float, float]:
    """Heuristic startup/processing/cleanup partition of ``total`` (not measured)."""

    total = max(0.0, total)
    startup_share, processing_share = _PHASE_SHARES.get(tool_class, _DEFAULT_PHASE_SHARES)
    startup = total * startup_share
    processing = total * processing_share
    cleanup = total - startup - processing
    return startup, processing, max(0.0, cleanup)


def classify_tool(
    basename: str,
    *,
    rules: Sequence[MarkerRule],
    io: IoStats,
    execution_time: float,
    peak_rss_kb: int,
) -> ToolClass:
    for rule in rules:
        if rule.matches(basename):
            return ToolClass(rule.label)
    if io.stdout_bytes > 1000 and io.verbose_msgs > 0:
        return ToolClass.REPORTING_TOOL
    if execution_time > 1.0 and peak_rss_kb > 10000:
        return ToolClass.HEAVY_PROCESSOR
    return ToolClass.SYSTEM_UTILITY


def output_complexity(io: IoStats) -> int:
    score = 1
    if io.stdout_bytes > 100_000:
        score += 3
    elif io.stdout_bytes > 10_000:
        score += 2
    elif io.stdout_bytes > 1000:
        score += 1
    if io.verbose_msgs > 5:
        score += 2
    if io.error_msgs > 0:
        score += 1
    if io.warning_msgs > 0:
        score += 1
    return min(score, 10)


def verbose_intelligence(
    basename: str,
    *,
    rules: Sequence[MarkerRule],
    tool_class: ToolClass,
    io: IoStats,
    execution_time: float,
) -> tuple[str, int, bool]:
    """Return ``(operation_type, score, structured)`` inferred from the tool and its output."""

    operation, score = "unknown", 1
    for rule in rules:
        if rule.matches(basename):
            operation, score = rule.label, rule.score
            break
    else:
        if tool_class is ToolClass.FILE_UTILITY:
            operation, score = ToolClass.FILE_UTILITY.value, FILE_UTILITY_OPERATION_SCORE

    structured = False
    if io.stdout_bytes > 1000:
        score += 2
    if io.verbose_msgs > 5:
        structured = True
        score += 1
    if execution_time < FAST_EXECUTION_SECONDS and io.stdout_bytes > 100:
        score += 1
    if tool_class is ToolClass.COMPILER:
        score = max(score, COMPILER_INTELLIGENCE_FLOOR)
    return operation, min(score, 10), structured


def behavior_pattern(execution_time: float, io: IoStats, peak_rss_kb: int) -> str:
    if execution_time < FAST_EXECUTION_SECONDS:
        parts = ["fast_execution"]
    elif execution_time > LONG_RUNNING_SECONDS:
        parts = ["long_running"]
    else:
        parts = ["standard_execution"]
    if io.stdout_bytes > 50_000:
        parts.append("verbose_output")
    if peak_rss_kb > 100_000:
        parts.append("memory_intensive")
    return "+".join(parts)


def resource_efficiency(peak_rss_kb: int, stdout_bytes: int) -> int:
    if peak_rss_kb <= 0:
        return 10
    ratio = peak_rss_kb / (stdout_bytes + 1)
    if ratio > 10:
        return 3
    if ratio > 5:
        return 5
    if ratio > 1:
        return 7
    return 10


def performance_category(execution_time: float) -> str:
    if execution_time < 0.05:
        return "Excellent"
    if execution_time < 0.5:
        return "Good"
    if execution_time < 2.0:
        return "Average"
    return "Slow"


class ToolClassificationPass(FeatureGatedPass):
    name = "tool_classification"
    gate = PROFILE_GATE

    def run(self, context: EnrichmentContext) -> None:
        result = context.result
        tool_class = classify_tool(
            context.basename,
            rules=context.signatures.tool_classes,
            io=result.io,
            execution_time=result.execution.execution_time,
            peak_rss_kb=result.memory.peak_rss_kb,
        )
        result.classification.tool_class = tool_class
        context.logger.debug("tool classified", tool_class=tool_class.value)


class TimingBreakdownPass(FeatureGatedPass):
    name = "timing_breakdown"
    gate = PROFILE_GATE

    def run(self, context: EnrichmentContext) -> None:
        execution = context.result.execution
        startup, processing, cleanup = split_execution_time(
            execution.execution_time, context.result.classification.tool_class
        )
        execution.startup_time = startup
        execution.processing_time = processing
        execution.cleanup_time = cleanup


class OutputComplexityPass(FeatureGatedPass):
    name = "output_complexity"
    gate = PROFILE_GATE

    def run(self, context: EnrichmentContext) -> None:
        io = context.result.io
        classification = context.result.classification
        classification.output_complexity = output_complexity(io)
        classification.structured_output = io.verbose_msgs > 3


class VerboseIntelligencePass(FeatureGatedPass):
    name = "verbose_intelligence"
    gate = PROFILE_GATE

    def run(self, context: EnrichmentContext) -> None:
        result = context.result
        classification = result.classification
        operation, score, structured = verbose_intelligence(
            context.basename,
            rules=context.signatures.verbose_operations,
            tool_class=classification.tool_class,
            io=result.io,
            execution_time=result.execution.execution_time,
        )
        classification.verbose_operation_type = operation
        classification.verbose_intelligence_score = score
        if structured:
            classification.structured_output = True


class BehaviorPatternPass(FeatureGatedPass):
    name = "behavior_pattern"
    gate = PROFILE_GATE

    def run(self, context: EnrichmentContext) -> None:
        result = context.result
        result.classification.behavior_pattern = behavior_pattern(
            result.execution.execution_time, result.io, result.memory.peak_rss_kb
        )


class ResourceEfficiencyPass(FeatureGatedPass):
    name = "resource_efficiency"
    gate = PROFILE_GATE

    def run(self, context: EnrichmentContext) -> None:
        result = context.result
        classification: Classification = result.classification
        classification.resource_efficiency = resource_efficiency(
            result.memory.peak_rss_kb, result.io.stdout_bytes
        )
        classification.performance_category = performance_category(
            result.execution.execution_time
        )


__all__ = [
    "COMPILER_INTELLIGENCE_FLOOR",
    "FAST_EXECUTION_SECONDS",
    "LONG_RUNNING_SECONDS",
    "BehaviorPatternPass",
    "OutputComplexityPass",
    "ResourceEfficiencyPass",
    "TimingBreakdownPass",
    "ToolClassificationPass",
    "VerboseIntelligencePass",
    "behavior_pattern",
    "classify_tool",
    "output_complexity",
    "performance_category",
    "resource_efficiency",
    "split_execution_time",
    "verbose_intelligence",
]
