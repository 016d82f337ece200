"""Unit tests for security scoring and vulnerability probes."""

from __future__ import annotations

import pytest

from binscope.domain.models import ExecutionStats, Feature, MemoryStats, SecurityFindings
from binscope.enrichment.security import (
    SecurityScoringPass,
    apply_vulnerability_probes,
    score_classification,
    score_security,
)
from binscope.enrichment.signatures import default_signatures

from . import checkpoint_ids, make_context

_SIGNATURES = default_signatures()


def _score(
    basename: str,
    exit_code: int,
    *,
    seconds: float = 0.01,
    peak_rss_kb: int = 0,
    timed_out: bool = False,
) -> SecurityFindings:
    return score_security(
        basename,
        execution=ExecutionStats(
            exit_code=exit_code, execution_time=seconds, timed_out=timed_out, ran=True
        ),
        memory=MemoryStats(peak_rss_kb=peak_rss_kb),
        signatures=_SIGNATURES,
    )


def test_clean_exit_scores_high() -> None:
    findings = _score("hello", 0)

    assert findings.overall_security_score == 9
    assert findings.classification == "execution_success"
    assert set(findings.risk_indicators().values()) == {0}


def test_segfault_is_always_critical() -> None:
    findings = _score("hello", 139)

    assert findings.overall_security_score == 1
    assert findings.classification == "critical_memory_corruption"
    assert findings.buffer_overflow_risk == 5
    assert findings.use_after_free_risk == 5
    assert findings.null_pointer_risk == 5


def test_abort_marks_heap_corruption() -> None:
    findings = _score("hello", 134)

    assert findings.overall_security_score == 1
    assert findings.classification == "critical_heap_corruption"
    assert findings.use_after_free_risk == 5
    assert findings.memory_leak_risk == 4


def test_known_test_program_that_succeeds_is_high_risk() -> None:
    findings = _score("vulnerable_test", 0)

    assert findings.overall_security_score == 2
    assert findings.classification == "high_risk_test_program"


def test_dangerous_basename_patterns_accumulate() -> None:
    findings = _score("strcpy_gets_exec_system", 42)

    assert findings.dangerous_function_count == 4
    assert findings.overall_security_score == 1
    assert findings.classification == "critical_risk"


def test_basename_risk_markers_raise_specific_risks() -> None:
    findings = _score("overflow_printf_demo", 42)

    assert findings.buffer_overflow_risk == 3
    assert findings.format_string_risk == 3
    assert findings.overall_security_score == 1


def test_fast_memory_growth_raises_leak_risk() -> None:
    findings = _score("hello", 42, seconds=1.0, peak_rss_kb=100_000)

    assert findings.memory_leak_risk == 1
    assert findings.overall_security_score == 4
    assert findings.classification == "high_risk"


def test_timeout_is_scored_without_the_signal_delta() -> None:
    findings = _score("hello", 143, timed_out=True)

    assert findings.overall_security_score == 5
    assert findings.buffer_overflow_risk == 0


@pytest.mark.parametrize(
    ("score", "expected"),
    [(10, "low_risk"), (8, "low_risk"), (6, "medium_risk"), (4, "high_risk"), (3, "critical_risk")],
)
def test_score_classification(score: int, expected: str) -> None:
    assert score_classification(score) == expected


def test_probe_matches_the_first_argument() -> None:
    findings = SecurityFindings()

    matched = apply_vulnerability_probes(
        "vulnerable_app", ("use_after_free",), signatures=_SIGNATURES, findings=findings
    )

    assert matched is True
    assert findings.use_after_free_risk == 5
    assert findings.vulnerable_functions == ["test_use_after_free"]
    assert findings.vulnerability_details == "Use-after-free in test_use_after_free() function"


@pytest.mark.parametrize(
    ("basename", "argv"),
    [("vulnerable_app", ()), ("vulnerable_app", ("nothing",)), ("demo", ("buffer_overflow",))],
)
def test_probe_requires_a_known_program_and_selector(basename: str, argv: tuple[str, ...]) -> None:
    findings = SecurityFindings()

    assert apply_vulnerability_probes(basename, argv, signatures=_SIGNATURES, findings=findings) is False
    assert findings.vulnerable_functions == []


def test_pass_records_probe_and_score_checkpoints() -> None:
    context = make_context("/opt/tests/vulnerable_app", ("buffer_overflow",), exit_code=139)

    SecurityScoringPass().run(context)

    security = context.result.security
    assert security.buffer_overflow_risk == 5
    assert security.vulnerable_functions == ["test_buffer_overflow"]
    assert security.overall_security_score == 1
    assert checkpoint_ids(context) == [
        "SEC: vulnerability_probe_matched",
        "SEC: security_scored",
    ]


def test_pass_is_gated_on_security_analysis() -> None:
    context = make_context(features=(Feature.MEMORY, Feature.IO, Feature.DEEP))

    assert SecurityScoringPass().applies(context) is False
