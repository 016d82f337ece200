"""
binscope — unit tests for language detection and framework tagging

File: tests/unit/enrichment/test_language.py
Last updated: 2026-10-17

Purpose
- Validate the detection cascade and the framework sources against real files in ``tmp_path``.

What this test file should cover
- Name and path rules, shebang lines, ``strings`` markers, ``file`` output, manifests.
- Runtime version lookups and their parsing.
- Per-language notes and security profiles, including crash evidence winning over them.
- Framework discovery order and deduplication.

Functional requirements
- Helper programs are answered by a fake runner.
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from binscope.domain.models import Feature, LanguageProfile, SecurityFindings
from binscope.enrichment.base import EnrichmentContext, EnrichmentUnavailable, ToolResult
from binscope.enrichment.language import (
    SHELL_LANGUAGE,
    FrameworkTaggingPass,
    LanguageDetectionPass,
    apply_security_profile,
    frameworks_in_text,
    match_name_rule,
    parse_runtime_version,
    read_shebang,
    shell_script_frameworks,
)
from binscope.enrichment.security import SecurityScoringPass
from binscope.enrichment.signatures import default_signatures

from . import FakeToolRunner, checkpoint_ids, make_context

_SIGNATURES = default_signatures()


def _write(path: Path, text: str, mode: int = 0o755) -> str:
    path.write_text(text, encoding="utf-8")
    os.chmod(path, mode)
    return str(path)


def _blob(path: Path) -> str:
    path.write_bytes(b"\x7fELF\x02\x01\x01\x00binary")
    return str(path)


def test_name_rules_match_basename_or_resolved_path() -> None:
    jar = match_name_rule("/opt/app/server.jar", _SIGNATURES.languages_by_name)
    script = match_name_rule("/opt/app/tool.py", _SIGNATURES.languages_by_name)

    assert jar is not None and jar.language == "Java"
    assert script is not None and script.language == "Python"
    assert match_name_rule("/opt/app/hello", _SIGNATURES.languages_by_name) is None


def test_shebang_is_only_read_from_interpreter_lines(tmp_path: Path) -> None:
    script = _write(tmp_path / "runner", "#!/bin/bash\necho hi\n")
    plain = _write(tmp_path / "notes", "echo hi\n")

    assert read_shebang(script) == "#!/bin/bash"
    assert read_shebang(plain) is None
    assert read_shebang(tmp_path / "absent") is None


@pytest.mark.parametrize(
    ("output", "expected"),
    [
        ('openjdk version "17.0.2" 2022-01-18\nOpenJDK Runtime', "17.0.2"),
        ("Python 3.12.1\n", "3.12.1"),
        ("v20.11.0\n", "20.11.0"),
        ("rustc 1.70.0 (90c541806 2023-05-31)\n", "1.70.0"),
        ("go version go1.21.0 linux/amd64\n", "1.21.0"),
        ("\nThis is perl 5, version 38, subversion 2 (v5.38.2) built for x86_64-linux\n", "5.38.2"),
        ("\n\n", ""),
    ],
)
def test_runtime_version_parsing(output: str, expected: str) -> None:
    assert parse_runtime_version(output) == expected


def test_shebang_detection_asks_the_runtime_for_its_version(tmp_path: Path) -> None:
    script = _write(tmp_path / "runner", "#!/usr/bin/env python3\nprint('hi')\n")
    runner = FakeToolRunner(
        {"python3": ToolResult(argv=("python3", "--version"), exit_code=0, stdout="", stderr="Python 3.12.1")}
    )
    context = make_context(script, runner=runner)

    LanguageDetectionPass().run(context)

    profile = context.result.language
    assert profile.detected_language == "Python"
    assert profile.dependency_manager == "pip"
    assert profile.managed_memory is True
    assert profile.runtime_version == "3.12.1"
    assert runner.programs == ["python3"]
    assert checkpoint_ids(context) == ["LANG: detected"]


def test_shell_shebang_is_detected_without_helpers(tmp_path: Path) -> None:
    script = _write(tmp_path / "runner", "#!/bin/sh\nexit 0\n")
    context = make_context(script)

    LanguageDetectionPass().run(context)

    assert context.result.language.detected_language == SHELL_LANGUAGE
    assert context.result.language.runtime_version == ""


def test_strings_markers_identify_compiled_languages(tmp_path: Path) -> None:
    blob = _blob(tmp_path / "service")
    runner = FakeToolRunner({"strings": "core::panicking\nrust_begin_unwind\n"})
    context = make_context(blob, runner=runner)

    LanguageDetectionPass().run(context)

    assert context.result.language.detected_language == "Rust"
    assert context.result.language.unsafe_code is False
    assert context.result.language.language_specific_info == ""


def test_file_output_identifies_native_binaries(tmp_path: Path) -> None:
    blob = _blob(tmp_path / "service")
    runner = FakeToolRunner(
        {"strings": "plain text\n", "file": "service: ELF 64-bit LSB pie executable, x86-64\n"}
    )
    context = make_context(blob, runner=runner)

    LanguageDetectionPass().run(context)

    profile = context.result.language
    assert profile.detected_language == "C/C++"
    assert profile.dependency_manager == "Make/CMake"
    assert runner.specs[-1].max_lines == 1


def test_manifest_is_the_last_fallback(tmp_path: Path) -> None:
    blob = _blob(tmp_path / "service")
    (tmp_path / "Cargo.toml").write_text("[package]\nname = 'service'\n", encoding="utf-8")
    context = make_context(blob)

    LanguageDetectionPass().run(context)

    assert context.result.language.detected_language == "Rust"
    assert context.result.language.dependency_manager == "Cargo"


def test_detection_is_unavailable_without_any_evidence_source(tmp_path: Path) -> None:
    blob = _blob(tmp_path / "service")

    with pytest.raises(EnrichmentUnavailable):
        LanguageDetectionPass().run(make_context(blob))


def test_unknown_language_when_helpers_answer_without_a_match(tmp_path: Path) -> None:
    blob = _blob(tmp_path / "service")
    runner = FakeToolRunner({"strings": "nothing\n", "file": "service: data\n"})
    context = make_context(blob, runner=runner)

    LanguageDetectionPass().run(context)

    assert context.result.language.detected_language == "Unknown"


def test_frameworks_in_text_deduplicates() -> None:
    table = _SIGNATURES.frameworks_by_manifest["requirements.txt"]

    assert frameworks_in_text("tensorflow==2.15\nkeras\nnumpy\n", table) == [
        "Pandas/NumPy",
        "TensorFlow/Keras",
    ]


def test_shell_script_markers_are_case_insensitive(tmp_path: Path) -> None:
    script = _write(tmp_path / "build.sh", "#!/bin/sh\n./CONFIGURE --host=arm\nMake install\n")

    found = shell_script_frameworks(script, _SIGNATURES.shell_script_frameworks)

    assert found == ["GNU Autotools", "Cross-Compilation", "GNU Make"]


def test_framework_pass_combines_every_source(tmp_path: Path) -> None:
    script = _write(tmp_path / "flask_app.sh", "#!/bin/bash\n./configure --host=arm\nmake install\n")
    (tmp_path / "requirements.txt").write_text("django==4.2\nnumpy\nflask\n", encoding="utf-8")
    context = make_context(script)
    context.result.language = LanguageProfile(detected_language=SHELL_LANGUAGE)

    FrameworkTaggingPass().run(context)

    assert context.result.language.frameworks == [
        "Flask",
        "Django",
        "Pandas/NumPy",
        "GNU Autotools",
        "Cross-Compilation",
        "GNU Make",
    ]
    assert checkpoint_ids(context) == ["LANG: frameworks"]


def test_framework_pass_skips_build_scripts_for_other_languages(tmp_path: Path) -> None:
    script = _write(tmp_path / "runner", "#!/usr/bin/env python3\n# make all\n")
    context = make_context(script)
    context.result.language = LanguageProfile(detected_language="Python")

    FrameworkTaggingPass().run(context)

    assert context.result.language.frameworks == []
    assert checkpoint_ids(context) == []


def _scored(context: EnrichmentContext) -> EnrichmentContext:
    SecurityScoringPass().run(context)
    context.result.completed_passes.append("security_scoring")
    return context


def test_rustc_version_and_unsafe_strings_shape_the_profile(tmp_path: Path) -> None:
    blob = _blob(tmp_path / "service")
    runner = FakeToolRunner(
        {
            "strings": "rust_begin_unwind\ncore::cell::UnsafeCell\n",
            "rustc": "rustc 1.70.0 (90c541806 2023-05-31)\n",
        }
    )
    context = make_context(blob, runner=runner)

    LanguageDetectionPass().run(context)

    profile = context.result.language
    assert profile.detected_language == "Rust"
    assert profile.runtime_version == "1.70.0"
    assert profile.unsafe_code is True
    assert profile.language_specific_info == "Unsafe Rust code detected - manual security review recommended"
    assert "rustc" in runner.programs


def test_go_profile_rewrites_the_scored_findings(tmp_path: Path) -> None:
    blob = _blob(tmp_path / "service")
    runner = FakeToolRunner({"strings": "runtime.go\ngolang.org/x/sys\n"})
    context = _scored(make_context(blob, runner=runner))

    LanguageDetectionPass().run(context)

    security = context.result.security
    assert context.result.language.detected_language == "Go"
    assert security.overall_security_score == 8
    assert security.buffer_overflow_risk == 1
    assert security.null_pointer_risk == 2
    assert security.memory_leak_risk == 2
    assert security.classification == "execution_success"
    assert context.result.language.language_specific_info.startswith("Go binary")
    assert checkpoint_ids(context)[-2:] == ["LANG: detected", "SEC: language_profile_applied"]


def test_jar_and_logging_adjustments_stack_in_order(tmp_path: Path) -> None:
    plain = _blob(tmp_path / "server.jar")
    logging_jar = _blob(tmp_path / "log4j-core.jar")
    plain_context = _scored(make_context(plain))
    logging_context = _scored(make_context(logging_jar))

    LanguageDetectionPass().run(plain_context)
    LanguageDetectionPass().run(logging_context)

    plain_security = plain_context.result.security
    assert plain_security.overall_security_score == 10
    assert plain_security.format_string_risk == 2
    assert plain_security.buffer_overflow_risk == 1
    assert plain_context.result.language.language_specific_info.startswith("JAR file analysis")
    logging_security = logging_context.result.security
    assert logging_security.overall_security_score == 8
    assert logging_security.format_string_risk == 5
    assert "Log4Shell" in logging_context.result.language.language_specific_info


def test_score_band_classification_follows_the_profile_score(tmp_path: Path) -> None:
    script = _write(tmp_path / "runner", "#!/usr/bin/env python3\nraise SystemExit(3)\n")
    context = make_context(script, exit_code=3)
    _scored(context)
    assert context.result.security.classification == "high_risk"

    LanguageDetectionPass().run(context)

    security = context.result.security
    assert security.overall_security_score == 7
    assert security.format_string_risk == 3
    assert security.classification == "medium_risk"


def test_segfault_evidence_outranks_the_shell_profile(tmp_path: Path) -> None:
    script = _write(tmp_path / "build.sh", "#!/bin/sh\nkill -SEGV $$\n")
    context = _scored(make_context(script, exit_code=139))

    LanguageDetectionPass().run(context)

    security = context.result.security
    assert security.overall_security_score == 1
    assert security.classification == "critical_memory_corruption"
    assert security.buffer_overflow_risk == 5
    assert security.use_after_free_risk == 5
    assert security.null_pointer_risk == 5
    assert context.result.language.language_specific_info.startswith("Build/config script")


def test_profile_note_without_security_scoring_leaves_findings_alone(tmp_path: Path) -> None:
    script = _write(tmp_path / "web_report.pl", "#!/usr/bin/perl\nprint 1;\n")
    context = make_context(script, features=(Feature.DEEP,))
    before = SecurityFindings()

    LanguageDetectionPass().run(context)

    assert context.result.language.detected_language == "Perl"
    assert context.result.language.language_specific_info.startswith("Perl CGI/web script")
    assert context.result.security == before
    assert checkpoint_ids(context) == ["LANG: detected"]


def test_apply_security_profile_sets_then_adjusts() -> None:
    profile = _SIGNATURES.language_profiles["Perl"]
    findings = SecurityFindings(overall_security_score=9, buffer_overflow_risk=4)

    apply_security_profile(findings, profile, profile.adjustments)

    assert findings.overall_security_score == 4
    assert findings.buffer_overflow_risk == 1
    assert findings.format_string_risk == 3
