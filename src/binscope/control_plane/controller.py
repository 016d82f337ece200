"""Run controller composing validation, supervision, enrichment and the non-executing front-ends."""

from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import IO, Any, BinaryIO, Final

import structlog

from binscope.config.run import RunConfig
from binscope.control_plane.safe_analysis import SafeAnalysisReport, SafeAnalyzer
from binscope.domain.models import AnalysisResult, Checkpoint, CheckpointCategory, ExecutionMode
from binscope.enrichment.base import EnrichmentContext, LocalToolRunner, ToolRunner
from binscope.enrichment.pipeline import EnrichmentPipeline, PipelineReport
from binscope.enrichment.signatures import SignatureRegistry, default_signatures
from binscope.observability.checkpoints import CheckpointLog
from binscope.observability.clock import Clock, SystemClock
from binscope.observability.logging import correlation_scope
from binscope.observability.triggers import TriggerRegistry
from binscope.sandbox.sampling import ProcessSampler
from binscope.sandbox.supervisor import ChildSupervisor, SupervisorOutcome
from binscope.sandbox.validator import ValidationReport, validate_executable

logger = structlog.get_logger(__name__)

DEFAULT_TRIGGERS: Final[tuple[tuple[str, str], ...]] = (
    ("SEC:*", "security_monitor"),
    ("FUNC:*", "performance_monitor"),
)


def install_default_triggers(registry: TriggerRegistry, result: AnalysisResult) -> None:
    """Register the per-run monitors that count their hits into ``result``."""

    for pattern, name in DEFAULT_TRIGGERS:
        registry.register(pattern, name, _monitor_callback(name, result))


def _monitor_callback(name: str, result: AnalysisResult) -> Callable[[Checkpoint], None]:
    def _callback(checkpoint: Checkpoint) -> None:
        result.record_trigger_hit(name)
        logger.info(
            "trigger fired",
            trigger=name,
            checkpoint_id=checkpoint.id,
            category=checkpoint.category.value,
        )

    return _callback


@dataclass(frozen=True, slots=True)
class AnalysisOutcome:
    """Everything the reporters need about one finished run."""

    run_id: str
    config: RunConfig
    result: AnalysisResult
    checkpoints: CheckpointLog
    validation: ValidationReport | None = None
    supervisor: SupervisorOutcome | None = None
    enrichment: PipelineReport | None = None
    safe_analysis: SafeAnalysisReport | None = None
    interrupted: bool = False

    @property
    def target_ran(self) -> bool:
        return self.supervisor is not None and self.result.execution.ran

    @property
    def target_succeeded(self) -> bool:
        return self.target_ran and self.result.execution.success


class AnalysisController:
    """Drive one run for whichever execution mode the config selects."""

    def __init__(
        self,
        *,
        runner: ToolRunner | None = None,
        sampler: ProcessSampler | None = None,
        clock: Clock | None = None,
        signatures: SignatureRegistry | None = None,
        pipeline: EnrichmentPipeline | None = None,
        stdout_sink: BinaryIO | IO[bytes] | None = None,
        stderr_sink: BinaryIO | IO[bytes] | None = None,
        handle_sigint: bool = True,
        registry_factory: Callable[[], TriggerRegistry] = TriggerRegistry,
    ) -> None:
        self._runner = runner if runner is not None else LocalToolRunner()
        self._sampler = sampler
        self._clock = clock if clock is not None else SystemClock()
        self._signatures = signatures
        self._pipeline = pipeline if pipeline is not None else EnrichmentPipeline()
        self._stdout_sink = stdout_sink
        self._stderr_sink = stderr_sink
        self._handle_sigint = handle_sigint
        self._registry_factory = registry_factory

    def run(self, config: RunConfig) -> AnalysisOutcome:
        run_id = uuid.uuid4().hex[:12]
        registry = self._registry_factory()
        checkpoints = CheckpointLog(
            registry=registry,
            clock=self._clock,
            capacity=config.settings.checkpoint_capacity,
        )
        result = AnalysisResult(target_path=config.target_path, target_argv=config.target_argv)
        install_default_triggers(registry, result)

        with correlation_scope(run_id=run_id, target=config.target_path, mode=config.mode.value):
            checkpoints.init()
            checkpoints.log(
                "CONFIG: run_configured",
                CheckpointCategory.LOAD,
                f"mode={config.mode.value} features={','.join(sorted(config.features))}",
            )
            logger.info("analysis started", features=sorted(config.features))
            try:
                fields = self._dispatch(config, result, checkpoints)
            finally:
                checkpoints.cleanup()

        return AnalysisOutcome(
            run_id=run_id, config=config, result=result, checkpoints=checkpoints, **fields
        )

    def _dispatch(
        self, config: RunConfig, result: AnalysisResult, checkpoints: CheckpointLog
    ) -> dict[str, Any]:
        if config.mode is ExecutionMode.DRY_RUN:
            return self._dry_run(config, checkpoints)
        if config.mode is ExecutionMode.SAFE_ANALYZE:
            return self._safe_analyze(config, checkpoints)
        return self._execute(config, result, checkpoints)

    def _execute(
        self, config: RunConfig, result: AnalysisResult, checkpoints: CheckpointLog
    ) -> dict[str, Any]:
        validation = None
        if config.mode is ExecutionMode.DIRECT_EXEC:
            validation = validate_executable(config.target_path, checkpoints=checkpoints)

        supervisor = ChildSupervisor(
            checkpoints=checkpoints,
            result=result,
            sampler=self._sampler,
            clock=self._clock,
            stdout_sink=self._stdout_sink,
            stderr_sink=self._stderr_sink,
            handle_sigint=self._handle_sigint,
        )
        outcome = supervisor.run(config)

        context = EnrichmentContext(
            config=config,
            result=result,
            checkpoints=checkpoints,
            runner=self._runner,
            signatures=self._signature_registry(),
        )
        try:
            report = self._pipeline.run(context)
        except KeyboardInterrupt:
            logger.warning("enrichment interrupted")
            checkpoints.log("EXIT: analysis_interrupted", CheckpointCategory.EXIT, "enrichment")
            return {"validation": validation, "supervisor": outcome, "interrupted": True}
        return {
            "validation": validation,
            "supervisor": outcome,
            "enrichment": report,
            "interrupted": outcome.interrupted,
        }

    def _dry_run(self, config: RunConfig, checkpoints: CheckpointLog) -> dict[str, Any]:
        try:
            validation = None
            if config.simulated_mode is not ExecutionMode.SHELL_MONITOR:
                validation = validate_executable(config.target_path, checkpoints=checkpoints)
            checkpoints.log("DRY_RUN: simulated", CheckpointCategory.MISC, config.command_line)
        except KeyboardInterrupt:
            checkpoints.log("EXIT: analysis_interrupted", CheckpointCategory.EXIT, "dry-run")
            return {"interrupted": True}
        logger.info("dry run simulated", command=config.command_line)
        return {"validation": validation}

    def _safe_analyze(self, config: RunConfig, checkpoints: CheckpointLog) -> dict[str, Any]:
        try:
            validation = validate_executable(config.target_path, checkpoints=checkpoints)
            analyzer = SafeAnalyzer(
                runner=self._runner,
                checkpoints=checkpoints,
                signatures=self._signature_registry(),
                tool_timeout_seconds=config.settings.tool_timeout_seconds,
            )
            report = analyzer.analyze(config.target_path)
        except KeyboardInterrupt:
            checkpoints.log("EXIT: analysis_interrupted", CheckpointCategory.EXIT, "safe-analyze")
            return {"interrupted": True}
        return {"validation": validation, "safe_analysis": report}

    def _signature_registry(self) -> SignatureRegistry:
        if self._signatures is None:
            self._signatures = default_signatures()
        return self._signatures


__all__ = [
    "DEFAULT_TRIGGERS",
    "AnalysisController",
    "AnalysisOutcome",
    "install_default_triggers",
]
