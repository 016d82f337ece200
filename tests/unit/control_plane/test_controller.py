"""
binscope — unit tests for the run controller

File: tests/unit/control_plane/test_controller.py
Last updated: 2026-10-17

Purpose
- Drive whole runs for every execution mode with fake helpers and a fake sampler.

What this test file should cover
- Timeline shape for a clean direct execution (init first, cleanup last).
- Security enrichment after a segmentation fault, with unavailable helpers.
- Dry-run and safe-analyze never spawning the target.
- Default monitors counting their hits and enrichment interruption.

Functional requirements
- Targets are small ``/bin/sh`` scripts under ``tmp_path``.
"""

from __future__ import annotations

import io
import os
import signal
import threading
from pathlib import Path

import pytest

from binscope.config import RunConfigBuilder
from binscope.control_plane.controller import (
    DEFAULT_TRIGGERS,
    AnalysisController,
    install_default_triggers,
)
from binscope.domain.models import AnalysisResult, CheckpointCategory, ExitTag, Feature
from binscope.enrichment.base import EnrichmentContext
from binscope.enrichment.pipeline import EnrichmentPipeline
from binscope.observability.checkpoints import CheckpointLog
from binscope.observability.triggers import TriggerRegistry
from binscope.sandbox.validator import ExecutableValidationError

from .. import FakeSampler, make_config
from ..enrichment import FakeToolRunner


def _script(tmp_path: Path, name: str, body: str) -> str:
    path = tmp_path / name
    path.write_text(f"#!/bin/sh\n{body}\n", encoding="utf-8")
    os.chmod(path, 0o755)
    return str(path)


def _controller(**kwargs: object) -> tuple[AnalysisController, io.BytesIO]:
    stdout = io.BytesIO()
    controller = AnalysisController(
        runner=kwargs.pop("runner", FakeToolRunner()),  # type: ignore[arg-type]
        sampler=FakeSampler(),
        stdout_sink=stdout,
        stderr_sink=io.BytesIO(),
        handle_sigint=False,
        **kwargs,  # type: ignore[arg-type]
    )
    return controller, stdout


class _InterruptingPass:
    name = "interrupting"

    def applies(self, context: EnrichmentContext) -> bool:
        return True

    def run(self, context: EnrichmentContext) -> None:
        raise KeyboardInterrupt


def test_clean_direct_execution_timeline(tmp_path: Path) -> None:
    controller, stdout = _controller()
    config = make_config(_script(tmp_path, "hello.sh", "printf 'hello\\n'"))

    outcome = controller.run(config)

    assert len(outcome.run_id) == 12
    assert outcome.target_ran is True
    assert outcome.target_succeeded is True
    assert outcome.validation is not None
    assert outcome.supervisor is not None and outcome.supervisor.exit_code == 0
    assert outcome.enrichment is not None and outcome.enrichment.completed == ()
    assert stdout.getvalue() == b"hello\n"
    ids = [entry.id for entry in outcome.checkpoints.entries()]
    assert ids == [
        "SYSTEM: checkpoint_system_initialized",
        "CONFIG: run_configured",
        "VALIDATION: executable_validated",
        "FUNC: target_execution_start",
        "EXEC: target_started",
        "EXEC: target_completed",
        "FUNC: target_execution_end",
        "SYSTEM: checkpoint_system_cleanup",
    ]
    assert outcome.result.trigger_hits == {"performance_monitor": 2}
    assert outcome.checkpoints.get(1).context == "mode=direct-exec features=io,memory"


def test_segfault_with_security_analysis(tmp_path: Path) -> None:
    controller, _ = _controller()
    config = make_config(_script(tmp_path, "segv.sh", "kill -SEGV $$"), features=tuple(Feature))

    outcome = controller.run(config)

    result = outcome.result
    assert result.execution.exit_code == 139
    assert result.execution.exit_tag is ExitTag.MEMORY_CORRUPTION
    assert outcome.target_succeeded is False
    assert result.security.overall_security_score == 1
    assert result.security.classification == "critical_memory_corruption"
    assert result.unavailable_passes == ["symbol_scan", "debug_probe", "crash_backtrace"]
    assert "security_scoring" in result.completed_passes
    assert result.language.detected_language == "Shell Script (Bash)"
    assert result.language.language_specific_info.startswith("Shell script")
    assert result.security.buffer_overflow_risk == 5
    assert result.trigger_hits["security_monitor"] == 3


def test_validation_failure_propagates(tmp_path: Path) -> None:
    controller, _ = _controller()

    with pytest.raises(ExecutableValidationError, match="does not exist"):
        controller.run(make_config(str(tmp_path / "absent")))


def test_dry_run_validates_without_spawning(tmp_path: Path) -> None:
    controller, stdout = _controller()
    script = _script(tmp_path, "hello.sh", "printf 'hello\\n'")
    config = RunConfigBuilder().target(script, ["--flag"]).dry_run().build()

    outcome = controller.run(config)

    assert outcome.supervisor is None
    assert outcome.target_ran is False
    assert outcome.validation is not None
    assert stdout.getvalue() == b""
    simulated = outcome.checkpoints.matching("DRY_RUN: simulated")
    assert [entry.context for entry in simulated] == [f"{script} --flag"]


def test_shell_dry_run_skips_file_validation() -> None:
    controller, _ = _controller()
    config = RunConfigBuilder().monitor("make -j4 all").dry_run().build()

    outcome = controller.run(config)

    assert outcome.validation is None
    assert outcome.checkpoints.matching("DRY_RUN: simulated")[0].context == "make -j4 all"


def test_safe_analyze_reports_without_executing(tmp_path: Path) -> None:
    target = tmp_path / "tool.deb"
    target.write_bytes(b"\0" * 4096)
    runner = FakeToolRunner({"dpkg-deb": " postinst\n", "strings": "hello\n"})
    controller, _ = _controller(runner=runner)
    config = RunConfigBuilder().safe_analyze(str(target)).build()

    outcome = controller.run(config)

    assert outcome.supervisor is None
    assert outcome.safe_analysis is not None
    assert outcome.safe_analysis.risk_score == 1
    assert runner.programs == ["dpkg-deb", "strings"]
    assert outcome.result.trigger_hits == {}


def test_interrupt_during_enrichment_is_recorded(tmp_path: Path) -> None:
    controller, _ = _controller(pipeline=EnrichmentPipeline([_InterruptingPass()]))
    config = make_config(_script(tmp_path, "hello.sh", "exit 0"))

    outcome = controller.run(config)

    assert outcome.interrupted is True
    assert outcome.enrichment is None
    assert outcome.supervisor is not None
    interrupted = outcome.checkpoints.matching("EXIT: analysis_interrupted")
    assert [entry.category for entry in interrupted] == [CheckpointCategory.EXIT]
    assert outcome.checkpoints.entries()[-1].id == "SYSTEM: checkpoint_system_cleanup"


def test_default_triggers_count_hits_by_prefix() -> None:
    registry = TriggerRegistry()
    result = AnalysisResult(target_path="/bin/true")
    install_default_triggers(registry, result)
    log = CheckpointLog(registry=registry)

    log.log("SEC: finding", CheckpointCategory.SEC)
    log.log("SEC: finding", CheckpointCategory.SEC)
    log.log("FUNC: target_execution_start", CheckpointCategory.FUNC)
    log.log("EXEC: target_started", CheckpointCategory.SYSCALL)
    log.log("MEM: new_peak", CheckpointCategory.MEM)

    assert result.trigger_hits == {"security_monitor": 2, "performance_monitor": 1}
    assert [name for _, name in DEFAULT_TRIGGERS] == ["security_monitor", "performance_monitor"]


def test_forwarded_sigint_marks_the_run_interrupted(tmp_path: Path) -> None:
    controller = AnalysisController(
        runner=FakeToolRunner(),
        sampler=FakeSampler(),
        stdout_sink=io.BytesIO(),
        stderr_sink=io.BytesIO(),
        handle_sigint=True,
    )
    config = make_config(_script(tmp_path, "slow.sh", "exec sleep 5"))
    timer = threading.Timer(0.3, os.kill, args=(os.getpid(), signal.SIGINT))

    timer.start()
    try:
        outcome = controller.run(config)
    finally:
        timer.cancel()

    assert outcome.interrupted is True
    assert outcome.result.execution.exit_code == 130
    assert outcome.result.execution.exit_tag is ExitTag.INTERRUPTED
