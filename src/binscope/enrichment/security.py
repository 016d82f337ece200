"""
binscope — security scoring pass.

File: src/binscope/enrichment/security.py
Last updated: 2026-10-17

Purpose
- Combine the exit decoder's security delta with basename and resource heuristics.

Functional requirements
- Scoring starts from a neutral 5 and every risk is clamped into 0..5, the score into 1..10.
- A segmentation fault (exit 139) always ends as ``critical_memory_corruption`` with score 1.
- Findings are announced as ``SEC:`` checkpoints so security triggers observe them.
"""

from __future__ import annotations

from typing import Final

from binscope.domain.models import ExecutionStats, MemoryStats, SecurityFindings
from binscope.enrichment.base import SECURITY_GATE, EnrichmentContext, FeatureGatedPass
from binscope.enrichment.exit_codes import ExitDecoding, decode_exit, timeout_decoding
from binscope.enrichment.signatures import SignatureRegistry

STARTING_SCORE: Final[int] = 5
SEGFAULT_EXIT_CODE: Final[int] = 139
MEMORY_RATE_THRESHOLD_KB_PER_SECOND: Final[float] = 50_000.0
MEMORY_RATE_MIN_SECONDS: Final[float] = 0.1
DANGEROUS_PATTERN_BURST: Final[int] = 3
SCORE_BAND_CLASSIFICATIONS: Final[frozenset[str]] = frozenset(
    {"low_risk", "medium_risk", "high_risk", "critical_risk"}
)

# basename markers -> (risk field, increment)
_BASENAME_RISKS: Final[tuple[tuple[tuple[str, ...], str], ...]] = (
    (("overflow", "buffer"), "buffer_overflow_risk"),
    (("free", "uaf"), "use_after_free_risk"),
    (("format", "printf"), "format_string_risk"),
)
_BASENAME_RISK_INCREMENT: Final[int] = 3
_BASENAME_RISK_PENALTY: Final[int] = 2

_PROBE_RISK_FIELDS: Final[dict[str, str]] = {
    "buffer_overflow": "buffer_overflow_risk",
    "use_after_free": "use_after_free_risk",
    "format_string": "format_string_risk",
}


def exit_decoding_for(execution: ExecutionStats) -> ExitDecoding:
    if execution.timed_out:
        return timeout_decoding(execution.exit_code)
    return decode_exit(execution.exit_code)


def score_classification(score: int) -> str:
    if score >= 8:
        return "low_risk"
    if score >= 6:
        return "medium_risk"
    if score >= 4:
        return "high_risk"
    return "critical_risk"


def score_security(
    basename: str,
    *,
    execution: ExecutionStats,
    memory: MemoryStats,
    signatures: SignatureRegistry,
    findings: SecurityFindings | None = None,
) -> SecurityFindings:
    """Score one run; returns ``findings`` (or a fresh record) updated in place."""

    findings = findings if findings is not None else SecurityFindings()
    findings.overall_security_score = STARTING_SCORE

    decoding = exit_decoding_for(execution)
    decoding.security_delta.apply(findings)
    classification = decoding.security_delta.classification or ""

    if execution.exit_code == 0 and any(
        marker in basename for marker in signatures.vulnerable_test_markers
    ):
        findings.overall_security_score = 2
        classification = "high_risk_test_program"

    if memory.peak_rss_kb > 0 and execution.execution_time > MEMORY_RATE_MIN_SECONDS:
        rate = memory.peak_rss_kb / execution.execution_time
        if rate > MEMORY_RATE_THRESHOLD_KB_PER_SECOND:
            findings.memory_leak_risk += 1
            findings.overall_security_score -= 1

    for markers, risk_field in _BASENAME_RISKS:
        if any(marker in basename for marker in markers):
            setattr(findings, risk_field, getattr(findings, risk_field) + _BASENAME_RISK_INCREMENT)
            findings.overall_security_score -= _BASENAME_RISK_PENALTY

    for pattern in signatures.dangerous_basename_patterns:
        if pattern in basename:
            findings.dangerous_function_count += 1
            findings.overall_security_score -= 1
    if findings.dangerous_function_count > DANGEROUS_PATTERN_BURST:
        findings.overall_security_score -= 2

    findings.clamp()
    findings.classification = classification or score_classification(
        findings.overall_security_score
    )

    _segfault_final_rule(findings, execution)
    return findings


def reassert_crash_evidence(findings: SecurityFindings, execution: ExecutionStats) -> None:
    """Settle findings after a later rewrite (language profiles) changed the scored values.

    Score-band classifications follow the new score. A signal death re-applies the exit
    decoder's risk increments on top of the rewritten baseline, and exit 139 ends as
    ``critical_memory_corruption`` with score 1 whatever ran before.
    """

    decoding = exit_decoding_for(execution)
    if decoding.signaled and not execution.timed_out:
        decoding.security_delta.apply(findings)
        if decoding.security_delta.classification:
            findings.classification = decoding.security_delta.classification
    findings.clamp()
    if not findings.classification or findings.classification in SCORE_BAND_CLASSIFICATIONS:
        findings.classification = score_classification(findings.overall_security_score)
    _segfault_final_rule(findings, execution)


def _segfault_final_rule(findings: SecurityFindings, execution: ExecutionStats) -> None:
    if execution.exit_code == SEGFAULT_EXIT_CODE and not execution.timed_out:
        findings.overall_security_score = 1
        findings.classification = "critical_memory_corruption"


def apply_vulnerability_probes(
    basename: str,
    argv: tuple[str, ...],
    *,
    signatures: SignatureRegistry,
    findings: SecurityFindings,
) -> bool:
    """Infer the exercised vulnerability of a known test program from its first argument."""

    if "vulnerable" not in basename or not argv:
        return False
    selector = argv[0]
    for probe in signatures.vulnerability_probes:
        if probe.argument not in selector:
            continue
        risk_field = _PROBE_RISK_FIELDS.get(probe.risk)
        if risk_field is not None:
            setattr(findings, risk_field, 5)
        findings.add_vulnerable_function(probe.function)
        findings.vulnerability_details = probe.details
        return True
    return False


class SecurityScoringPass(FeatureGatedPass):
    name = "security_scoring"
    gate = SECURITY_GATE

    def run(self, context: EnrichmentContext) -> None:
        result = context.result
        findings = score_security(
            context.basename,
            execution=result.execution,
            memory=result.memory,
            signatures=context.signatures,
            findings=result.security,
        )
        if apply_vulnerability_probes(
            context.basename,
            context.target_argv,
            signatures=context.signatures,
            findings=findings,
        ):
            context.security_checkpoint("SEC: vulnerability_probe_matched", findings.vulnerability_details)

        context.security_checkpoint(
            "SEC: security_scored",
            f"{findings.classification} score={findings.overall_security_score}",
        )
        if findings.overall_security_score <= 3:
            context.logger.warning(
                "high security risk",
                classification=findings.classification,
                score=findings.overall_security_score,
            )


__all__ = [
    "SCORE_BAND_CLASSIFICATIONS",
    "SEGFAULT_EXIT_CODE",
    "STARTING_SCORE",
    "SecurityScoringPass",
    "apply_vulnerability_probes",
    "exit_decoding_for",
    "reassert_crash_evidence",
    "score_classification",
    "score_security",
]
