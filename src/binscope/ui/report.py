"""
binscope — report document builder.

File: src/binscope/ui/report.py
Last updated: 2026-10-17

Purpose
- Turn a finished ``AnalysisOutcome`` into the stable JSON document.

What should be included in this file
- ``build_report`` for all four execution modes.
- ``dump_report`` with the canonical ``indent=2`` encoding.

Functional requirements
- Pure: reads the outcome, never mutates it.
- Key order is stable; optional groups appear only when their feature ran.
- The timing breakdown is labelled heuristic.
"""

from __future__ import annotations

import json
from typing import Final

from binscope.constants import VERSION
from binscope.control_plane.controller import AnalysisOutcome
from binscope.domain.models import (
    AnalysisResult,
    ExecutionMode,
    Feature,
    JSONValue,
    Verbosity,
)
from binscope.observability.clock import Clock, SystemClock

DEEP_ANALYSIS_HINT: Final[str] = "Enable with -vv flag for detailed analysis"


def checkpoints_exported(outcome: AnalysisOutcome) -> bool:
    config = outcome.config
    return config.verbosity >= Verbosity.VERBOSE or config.settings.include_checkpoints


def build_report(outcome: AnalysisOutcome, *, clock: Clock | None = None) -> dict[str, JSONValue]:
    """Build the JSON report document for ``outcome``."""

    moment = (clock if clock is not None else SystemClock()).now()
    config = outcome.config
    document: dict[str, JSONValue] = {
        "version": VERSION,
        "timestamp": moment.isoformat(timespec="seconds"),
        "run_id": outcome.run_id,
        "target_executable": config.target_path,
        "mode": config.mode.value,
    }

    if config.mode is ExecutionMode.DRY_RUN:
        document["dry_run"] = _dry_run_section(outcome)
    elif config.mode is ExecutionMode.SAFE_ANALYZE:
        if outcome.safe_analysis is not None:
            document["safe_analysis"] = outcome.safe_analysis.to_dict()
    else:
        document.update(_execution_sections(outcome))

    document["interrupted"] = outcome.interrupted
    if checkpoints_exported(outcome):
        document["checkpoints"] = outcome.checkpoints.to_json_records()
    return document


def dump_report(document: dict[str, JSONValue]) -> str:
    return json.dumps(document, indent=2, sort_keys=False, ensure_ascii=False)


def _dry_run_section(outcome: AnalysisOutcome) -> dict[str, JSONValue]:
    config = outcome.config
    simulated = config.simulated_mode
    return {
        "simulated_mode": simulated.value if simulated is not None else None,
        "command": config.command_line,
        "argv": list(config.target_argv),
        "features": sorted(feature.value for feature in config.features),
        "validated": outcome.validation is not None,
        "executed": False,
    }


def _execution_sections(outcome: AnalysisOutcome) -> dict[str, JSONValue]:
    result = outcome.result
    execution = result.execution
    sections: dict[str, JSONValue] = {
        "execution": {
            "exit_code": execution.exit_code,
            "exit_description": execution.exit_description,
            "exit_tag": execution.exit_tag.value,
            "execution_time": round(execution.execution_time, 6),
            "success": execution.success,
            "timed_out": execution.timed_out,
            "signal": execution.signal_number,
        },
        "memory": {"peak_kb": result.memory.peak_rss_kb},
        "io": {
            "stdout_bytes": result.io.stdout_bytes,
            "stderr_bytes": result.io.stderr_bytes,
        },
        "intelligence": {
            "verbose_messages": result.io.verbose_msgs,
            "error_messages": result.io.error_msgs,
            "warning_messages": result.io.warning_msgs,
        },
        "deep_analysis": _deep_analysis(outcome),
        "enrichment": {
            "completed": list(result.completed_passes),
            "unavailable": list(result.unavailable_passes),
        },
        "triggers": {name: count for name, count in sorted(result.trigger_hits.items())},
    }
    return sections


def _deep_analysis(outcome: AnalysisOutcome) -> dict[str, JSONValue]:
    config = outcome.config
    result = outcome.result
    if not config.deep_analysis:
        return {"enabled": False, "message": DEEP_ANALYSIS_HINT}

    classification = result.classification
    execution = result.execution
    section: dict[str, JSONValue] = {
        "enabled": True,
        "tool_classification": classification.tool_class.value,
        "behavior_pattern": classification.behavior_pattern,
        "performance_category": classification.performance_category,
        "output_complexity_score": classification.output_complexity,
        "resource_efficiency_score": classification.resource_efficiency,
        "timing_breakdown": {
            "startup_time_seconds": round(execution.startup_time, 6),
            "processing_time_seconds": round(execution.processing_time, 6),
            "cleanup_time_seconds": round(execution.cleanup_time, 6),
            "heuristic": True,
        },
        "structured_output_detected": classification.structured_output,
        "verbose_intelligence": {
            "operation_type": classification.verbose_operation_type,
            "score": classification.verbose_intelligence_score,
        },
        "language_analysis": _language_section(result),
    }
    if config.has(Feature.SECURITY):
        section["security_analysis"] = _security_section(result)
    if config.has(Feature.NETWORK):
        section["network_analysis"] = _network_section(result)
    return section


def _language_section(result: AnalysisResult) -> dict[str, JSONValue]:
    language = result.language
    return {
        "detected_language": language.detected_language,
        "runtime_version": language.runtime_version,
        "dependency_manager": language.dependency_manager,
        "uses_managed_memory": language.managed_memory,
        "uses_unsafe_code": language.unsafe_code,
        "language_specific_info": language.language_specific_info,
        "frameworks": list(language.frameworks),
    }


def _security_section(result: AnalysisResult) -> dict[str, JSONValue]:
    security = result.security
    crash = security.crash_location
    pinpoint: dict[str, JSONValue] = {
        "vulnerable_function_count": len(security.vulnerable_functions),
        "has_debug_symbols": security.has_debug_symbols,
        "vulnerable_functions": list(security.vulnerable_functions),
        "crash_function": crash.function or None,
        "crash_line_number": crash.line or None,
        "source_file": crash.source_file or None,
        "stack_trace": list(security.stack_trace),
        "vulnerability_details": security.vulnerability_details or None,
    }
    return {
        "security_classification": security.classification,
        "overall_security_score": security.overall_security_score,
        "vulnerability_indicators": {
            "buffer_overflow_risk": security.buffer_overflow_risk,
            "memory_leak_indicators": security.memory_leak_risk,
            "use_after_free_risk": security.use_after_free_risk,
            "format_string_vulnerability": security.format_string_risk,
            "null_pointer_risk": security.null_pointer_risk,
            "integer_overflow_risk": security.integer_overflow_risk,
            "uninitialized_memory_risk": security.uninitialized_memory_risk,
            "dangerous_function_count": security.dangerous_function_count,
        },
        "pinpoint_analysis": pinpoint,
    }


def _network_section(result: AnalysisResult) -> dict[str, JSONValue]:
    network = result.network
    return {
        "connections_detected": network.connections_detected,
        "http_requests": network.http_requests,
        "dns_queries": network.dns_queries,
        "external_hosts": list(network.external_hosts),
        "repository_urls": list(network.repository_urls),
        "observed_connections": list(network.observed_connections),
        "package_downloads": network.package_downloads,
        "data_upload": network.data_upload,
        "suspicious": network.suspicious,
        "network_security_score": network.network_score,
        "summary": network.summary,
    }


__all__ = ["DEEP_ANALYSIS_HINT", "build_report", "checkpoints_exported", "dump_report"]
