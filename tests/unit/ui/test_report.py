"""
binscope — unit tests for the JSON report builder

File: tests/unit/ui/test_report.py
Last updated: 2026-10-17

Purpose
- Pin the report document shape for every execution mode.

What this test file should cover
- Stable top-level key order and the header fields.
- Deep-analysis gating and the feature-gated security and network groups.
- Dry-run and safe-analysis sections that never claim execution.
- Checkpoint export at verbose levels and through settings.
- Canonical JSON encoding.
- Re-encoding a parsed report keeps every nested key path.
"""

from __future__ import annotations

import json
from collections.abc import Callable

import pytest

from binscope.config import AnalyzerSettings
from binscope.constants import VERSION
from binscope.control_plane.controller import AnalysisOutcome
from binscope.control_plane.safe_analysis import SafeAnalysisReport
from binscope.domain.models import ExecutionMode, Feature, Verbosity
from binscope.ui.report import DEEP_ANALYSIS_HINT, build_report, checkpoints_exported, dump_report

from . import make_outcome
from .. import FakeClock, make_config


def test_direct_execution_document_shape() -> None:
    outcome = make_outcome(make_config("/usr/bin/true"))
    outcome.result.io.stdout_bytes = 6
    outcome.result.memory.peak_rss_kb = 1024
    outcome.result.trigger_hits.update({"security_monitor": 1, "performance_monitor": 2})

    document = build_report(outcome, clock=FakeClock())

    assert list(document) == [
        "version",
        "timestamp",
        "run_id",
        "target_executable",
        "mode",
        "execution",
        "memory",
        "io",
        "intelligence",
        "deep_analysis",
        "enrichment",
        "triggers",
        "interrupted",
    ]
    assert document["version"] == VERSION
    assert document["timestamp"] == "2026-10-17T09:30:00"
    assert document["run_id"] == "0123456789ab"
    assert document["mode"] == "direct-exec"
    assert document["execution"] == {
        "exit_code": 0,
        "exit_description": "Success",
        "exit_tag": "success",
        "execution_time": 0.004,
        "success": True,
        "timed_out": False,
        "signal": None,
    }
    assert document["memory"] == {"peak_kb": 1024}
    assert document["io"] == {"stdout_bytes": 6, "stderr_bytes": 0}
    assert document["deep_analysis"] == {"enabled": False, "message": DEEP_ANALYSIS_HINT}
    assert list(document["triggers"]) == ["performance_monitor", "security_monitor"]  # type: ignore[arg-type]
    assert document["interrupted"] is False


def test_crash_is_reported_with_its_signal() -> None:
    outcome = make_outcome(make_config("/opt/bin/crashy"), exit_code=139)

    execution = build_report(outcome, clock=FakeClock())["execution"]

    assert execution["exit_code"] == 139  # type: ignore[index]
    assert execution["exit_tag"] == "memory-corruption"  # type: ignore[index]
    assert execution["signal"] == 11  # type: ignore[index]
    assert execution["success"] is False  # type: ignore[index]


def test_deep_analysis_includes_only_enabled_groups() -> None:
    deep_only = make_outcome(make_config(features=(Feature.MEMORY, Feature.IO, Feature.DEEP)))
    everything = make_outcome(make_config("/usr/bin/curl", features=tuple(Feature)))
    security = everything.result.security
    security.overall_security_score = 2
    security.classification = "high_risk_test_program"
    security.dangerous_function_count = 3
    security.vulnerable_functions.append("vulnerable_copy")
    everything.result.network.http_requests = 2
    everything.result.network.external_hosts.append("example.com")

    partial = build_report(deep_only, clock=FakeClock())["deep_analysis"]
    full = build_report(everything, clock=FakeClock())["deep_analysis"]

    assert partial["enabled"] is True  # type: ignore[index]
    assert "security_analysis" not in partial  # type: ignore[operator]
    assert "network_analysis" not in partial  # type: ignore[operator]
    assert partial["timing_breakdown"]["heuristic"] is True  # type: ignore[index]
    assert partial["language_analysis"]["detected_language"] == "Unknown"  # type: ignore[index]

    analysis = full["security_analysis"]  # type: ignore[index]
    assert analysis["security_classification"] == "high_risk_test_program"
    assert analysis["overall_security_score"] == 2
    assert analysis["vulnerability_indicators"]["dangerous_function_count"] == 3
    assert analysis["pinpoint_analysis"]["vulnerable_functions"] == ["vulnerable_copy"]
    assert analysis["pinpoint_analysis"]["crash_function"] is None
    network = full["network_analysis"]  # type: ignore[index]
    assert network["http_requests"] == 2
    assert network["external_hosts"] == ["example.com"]
    assert network["network_security_score"] == 10


def test_dry_run_section_never_claims_execution() -> None:
    config = make_config(
        "/usr/bin/ls",
        ["-la", "my dir"],
        mode=ExecutionMode.DRY_RUN,
        simulated_mode=ExecutionMode.DIRECT_EXEC,
    )
    document = build_report(make_outcome(config), clock=FakeClock())

    assert "execution" not in document
    assert document["mode"] == "dry-run"
    assert document["dry_run"] == {
        "simulated_mode": "direct-exec",
        "command": "/usr/bin/ls -la 'my dir'",
        "argv": ["-la", "my dir"],
        "features": ["io", "memory"],
        "validated": False,
        "executed": False,
    }


def test_safe_analysis_section_is_the_report_mapping() -> None:
    config = make_config("/tmp/tool.deb", mode=ExecutionMode.SAFE_ANALYZE)
    safe = SafeAnalysisReport(path="/tmp/tool.deb", size_bytes=4096, risk_score=1)

    document = build_report(make_outcome(config, safe_analysis=safe), clock=FakeClock())

    assert document["safe_analysis"] == safe.to_dict()
    assert document["safe_analysis"]["executed"] is False  # type: ignore[index]
    assert "execution" not in document


def test_checkpoints_export_with_verbosity_or_settings() -> None:
    quiet = make_outcome(make_config())
    verbose = make_outcome(make_config(verbosity=Verbosity.VERBOSE))
    configured = make_outcome(make_config(settings=AnalyzerSettings(include_checkpoints=True)))

    assert checkpoints_exported(quiet) is False
    assert "checkpoints" not in build_report(quiet, clock=FakeClock())
    assert checkpoints_exported(configured) is True
    records = build_report(verbose, clock=FakeClock())["checkpoints"]
    assert [record["id"] for record in records] == [  # type: ignore[index, union-attr]
        "SYSTEM: checkpoint_system_initialized"
    ]


def test_interrupted_runs_are_flagged() -> None:
    outcome = make_outcome(make_config(), interrupted=True)

    assert build_report(outcome, clock=FakeClock())["interrupted"] is True


def test_dump_report_is_indented_and_keeps_unicode() -> None:
    outcome = make_outcome(make_config("/opt/bin/größe"))

    text = dump_report(build_report(outcome, clock=FakeClock()))

    assert text.startswith('{\n  "version": ')
    assert '"target_executable": "/opt/bin/größe"' in text
    assert json.loads(text)["run_id"] == "0123456789ab"


def _key_paths(value: object, prefix: str = "") -> set[str]:
    paths: set[str] = set()
    if isinstance(value, dict):
        for key, child in value.items():
            path = f"{prefix}.{key}"
            paths.add(path)
            paths |= _key_paths(child, path)
    elif isinstance(value, list):
        for child in value:
            paths |= _key_paths(child, f"{prefix}[]")
    return paths


def _very_verbose_run() -> AnalysisOutcome:
    outcome = make_outcome(
        make_config("/usr/bin/sort", ["data.txt"], features=tuple(Feature), verbosity=Verbosity.VERY_VERBOSE)
    )
    outcome.result.security.vulnerable_functions.append("vulnerable_copy")
    outcome.result.security.stack_trace.append("#0 main () at sort.c:12")
    outcome.result.network.external_hosts.append("example.com")
    outcome.result.language.frameworks.append("GNU Make")
    outcome.result.language.language_specific_info = "Shell script"
    outcome.result.trigger_hits.update({"security_monitor": 2})
    return outcome


def _dry_run() -> AnalysisOutcome:
    return make_outcome(
        make_config(
            "/usr/bin/ls", ["-la"], mode=ExecutionMode.DRY_RUN, simulated_mode=ExecutionMode.DIRECT_EXEC
        )
    )


def _safe_analysis() -> AnalysisOutcome:
    config = make_config("/tmp/tool.deb", mode=ExecutionMode.SAFE_ANALYZE)
    safe = SafeAnalysisReport(
        path="/tmp/tool.deb",
        size_bytes=4096,
        risk_score=6,
        dangerous_name_patterns=["backdoor"],
        notes=["package contains install scripts"],
    )
    return make_outcome(config, safe_analysis=safe)


@pytest.mark.parametrize(
    ("build", "section"),
    [(_very_verbose_run, ".checkpoints"), (_dry_run, ".dry_run"), (_safe_analysis, ".safe_analysis")],
)
def test_reencoding_a_parsed_report_keeps_every_key_path(
    build: Callable[[], AnalysisOutcome], section: str
) -> None:
    first = json.loads(dump_report(build_report(build(), clock=FakeClock())))

    second = json.loads(dump_report(first))

    assert _key_paths(second) == _key_paths(first)
    assert second == first
    assert section in _key_paths(first)
