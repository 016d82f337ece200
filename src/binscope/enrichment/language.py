"""
binscope — language/runtime detection and framework tagging passes.

File: src/binscope/enrichment/language.py
Last updated: 2026-10-17

Purpose
- Tag the target's implementation language, dependency manager and runtime version.
- Collect frameworks from the basename, manifest files and build scripts.
- Attach the per-language note and, when security scoring ran, rewrite the scored risks
  with the language's security profile.

Functional requirements
- Detection order: name rules, shebang line, ``strings`` magic, ``file`` output, manifests.
- Each framework is appended once, in discovery order.
- Unreadable manifests and missing helpers narrow the result; they never fail the run.
- Crash evidence from the exit code outranks a language baseline; exit 139 still ends at score 1.
"""

from __future__ import annotations

import os
import re
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final

from binscope.domain.models import CheckpointCategory, LanguageProfile, SecurityFindings
from binscope.enrichment.base import (
    DEEP_GATE,
    SECURITY_GATE,
    EnrichmentContext,
    EnrichmentUnavailable,
    FeatureGatedPass,
)
from binscope.enrichment.security import reassert_crash_evidence
from binscope.enrichment.signatures import (
    LanguageAdjustment,
    LanguageRule,
    LanguageSecurityProfile,
    ProfileCondition,
    SignatureRegistry,
)

SHEBANG_PREFIX: Final[str] = "#!/"
SHEBANG_READ_BYTES: Final[int] = 256
MANIFEST_READ_BYTES: Final[int] = 65_536
SHELL_LANGUAGE: Final[str] = "Shell Script (Bash)"
_VERSION_PATTERN: Final[re.Pattern[str]] = re.compile(r"\d+(?:\.\d+)+")


def read_shebang(path: str | Path) -> str | None:
    """Return the first line when it is a ``#!/`` interpreter line."""

    try:
        with open(path, "rb") as handle:
            head = handle.read(SHEBANG_READ_BYTES)
    except OSError:
        return None
    first_line = head.split(b"\n", 1)[0].decode("utf-8", errors="replace")
    return first_line if first_line.startswith(SHEBANG_PREFIX) else None


def match_name_rule(path: str, rules: Iterable[LanguageRule]) -> LanguageRule | None:
    resolved = os.path.realpath(path)
    basename = os.path.basename(resolved) or resolved
    for rule in rules:
        if rule.matches_name(basename, resolved):
            return rule
    return None


def match_marker_rule(text: str, rules: Iterable[LanguageRule]) -> LanguageRule | None:
    for rule in rules:
        if any(marker in text for marker in rule.basename_markers):
            return rule
    return None


def apply_language_rule(profile: LanguageProfile, rule: LanguageRule) -> None:
    profile.detected_language = rule.language
    profile.dependency_manager = rule.dependency_manager
    profile.managed_memory = rule.managed_memory
    profile.unsafe_code = rule.unsafe_code


def parse_runtime_version(output: str) -> str:
    """Extract a version from ``--version``-style output.

    A quoted version wins (``java -version``); otherwise the first dotted number on the
    first non-blank line (``rustc 1.70.0 (...)``, ``go version go1.21.0``, ``v20.11.0``).
    """

    lines = [line.strip() for line in output.splitlines() if line.strip()]
    if not lines:
        return ""
    first = lines[0]
    if first.count('"') >= 2:
        return first.split('"')[1]
    match = _VERSION_PATTERN.search(first)
    if match is not None:
        return match.group(0)
    return first.split()[-1]


@dataclass(slots=True)
class ProfileEvidence:
    """Facts profile conditions are tested against; ``strings`` output is fetched on first use."""

    basename: str
    resolved_path: str
    directory: Path
    load_strings: Callable[[], str]
    _strings: str | None = field(default=None, repr=False)

    @classmethod
    def for_target(cls, target: str, load_strings: Callable[[], str]) -> ProfileEvidence:
        resolved = os.path.realpath(target)
        return cls(
            basename=os.path.basename(resolved) or resolved,
            resolved_path=resolved,
            directory=Path(resolved).parent,
            load_strings=load_strings,
        )

    @property
    def strings_text(self) -> str:
        if self._strings is None:
            self._strings = self.load_strings().lower()
        return self._strings

    def matches(self, condition: ProfileCondition) -> bool:
        if any(marker in self.basename for marker in condition.basename):
            return True
        if any(marker in self.resolved_path for marker in condition.path):
            return True
        if any((self.directory / name).is_file() for name in condition.manifest):
            return True
        return any(marker.lower() in self.strings_text for marker in condition.strings)


def matching_adjustments(
    profile: LanguageSecurityProfile, evidence: ProfileEvidence
) -> list[LanguageAdjustment]:
    return [adjustment for adjustment in profile.adjustments if evidence.matches(adjustment.when)]


def language_note(profile: LanguageSecurityProfile, adjustments: Sequence[LanguageAdjustment]) -> str:
    note = profile.info
    for adjustment in adjustments:
        if adjustment.info:
            note = adjustment.info
    return note


def apply_security_profile(
    findings: SecurityFindings,
    profile: LanguageSecurityProfile,
    adjustments: Sequence[LanguageAdjustment],
) -> None:
    """Rewrite scored risks with the language baseline, then each matched adjustment in order."""

    for field_name, level in profile.risks:
        setattr(findings, field_name, level)
    if profile.score is not None:
        findings.overall_security_score = profile.score
    for adjustment in adjustments:
        for field_name, level in adjustment.risks:
            setattr(findings, field_name, level)
        if adjustment.score is not None:
            findings.overall_security_score = adjustment.score
        findings.overall_security_score += adjustment.score_delta


def manifest_text(directory: Path, name: str) -> str | None:
    path = directory / name
    if not path.is_file():
        return None
    try:
        with open(path, "rb") as handle:
            return handle.read(MANIFEST_READ_BYTES).decode("utf-8", errors="replace")
    except OSError:
        return None


def frameworks_in_text(text: str, table: Iterable[tuple[str, str]]) -> list[str]:
    found: list[str] = []
    for marker, framework in table:
        if marker in text and framework not in found:
            found.append(framework)
    return found


def shell_script_frameworks(path: str | Path, table: Iterable[tuple[str, str]]) -> list[str]:
    """Scan a build script line by line (case-insensitive) for build-system markers."""

    markers = tuple(table)
    found: list[str] = []
    try:
        with open(path, encoding="utf-8", errors="replace") as handle:
            for line in handle:
                lowered = line.lower()
                for marker, framework in markers:
                    if marker in lowered and framework not in found:
                        found.append(framework)
    except OSError:
        return found
    return found


class LanguageDetectionPass(FeatureGatedPass):
    name = "language_detection"
    gate = DEEP_GATE

    def run(self, context: EnrichmentContext) -> None:
        profile = context.result.language
        signatures = context.signatures
        rule = self._detect(context, signatures)
        if rule is not None:
            apply_language_rule(profile, rule)
            if rule.runtime_probe:
                profile.runtime_version = self._runtime_version(context, rule)

        security_profile = signatures.language_profiles.get(profile.detected_language)
        adjustments: list[LanguageAdjustment] = []
        if security_profile is not None:
            evidence = ProfileEvidence.for_target(context.target_path, lambda: self._strings(context))
            adjustments = matching_adjustments(security_profile, evidence)
            profile.language_specific_info = language_note(security_profile, adjustments)
            if any(adjustment.unsafe_code for adjustment in adjustments):
                profile.unsafe_code = True

        context.checkpoints.log(
            "LANG: detected",
            CheckpointCategory.MISC,
            f"{profile.detected_language} ({profile.dependency_manager or 'None'})",
        )
        context.logger.info(
            "language detected",
            language=profile.detected_language,
            dependency_manager=profile.dependency_manager,
        )

        if security_profile is not None and self._security_scored(context):
            findings = context.result.security
            apply_security_profile(findings, security_profile, adjustments)
            reassert_crash_evidence(findings, context.result.execution)
            context.security_checkpoint(
                "SEC: language_profile_applied",
                f"{profile.detected_language} {findings.classification} "
                f"score={findings.overall_security_score}",
            )

    @staticmethod
    def _security_scored(context: EnrichmentContext) -> bool:
        return (
            any(context.has(feature) for feature in SECURITY_GATE)
            and "security_scoring" in context.result.completed_passes
        )

    @staticmethod
    def _strings(context: EnrichmentContext) -> str:
        try:
            return context.run_tool("strings", context.target_path).stdout
        except EnrichmentUnavailable as exc:
            context.logger.debug("strings unavailable for language profile", reason=str(exc))
            return ""

    def _detect(self, context: EnrichmentContext, signatures: SignatureRegistry) -> LanguageRule | None:
        target = context.target_path

        rule = match_name_rule(target, signatures.languages_by_name)
        if rule is not None:
            return rule

        shebang = read_shebang(target)
        if shebang is not None:
            rule = match_marker_rule(shebang, signatures.languages_by_shebang)
            if rule is not None:
                return rule

        tools_answered = False
        try:
            strings_output = context.run_tool("strings", target)
        except EnrichmentUnavailable as exc:
            context.logger.debug("strings unavailable", reason=str(exc))
        else:
            tools_answered = True
            rule = match_marker_rule(strings_output.stdout, signatures.languages_by_strings)
            if rule is not None:
                return rule

        try:
            file_output = context.run_tool("file", target, max_lines=1)
        except EnrichmentUnavailable as exc:
            context.logger.debug("file unavailable", reason=str(exc))
        else:
            tools_answered = True
            if any(marker in file_output.stdout for marker in signatures.native_file_markers):
                return signatures.native_language

        directory = Path(target).resolve().parent
        for manifest in signatures.manifests:
            if (directory / manifest.file).is_file():
                return LanguageRule(
                    language=manifest.language, dependency_manager=manifest.dependency_manager
                )

        if not tools_answered and shebang is None:
            raise EnrichmentUnavailable("strings and file are unavailable")
        return None

    def _runtime_version(self, context: EnrichmentContext, rule: LanguageRule) -> str:
        try:
            probe = context.run_tool(*rule.runtime_probe)
        except EnrichmentUnavailable as exc:
            context.logger.debug("runtime probe unavailable", language=rule.language, reason=str(exc))
            return ""
        return parse_runtime_version(probe.output)


class FrameworkTaggingPass(FeatureGatedPass):
    name = "framework_tagging"
    gate = DEEP_GATE

    def run(self, context: EnrichmentContext) -> None:
        profile = context.result.language
        signatures = context.signatures

        for rule in signatures.frameworks_by_basename:
            if rule.matches(context.basename):
                profile.add_framework(rule.label)

        directory = Path(context.target_path).resolve().parent
        for manifest, table in signatures.frameworks_by_manifest.items():
            text = manifest_text(directory, manifest)
            if text is None:
                continue
            for framework in frameworks_in_text(text, table):
                profile.add_framework(framework)

        if profile.detected_language == SHELL_LANGUAGE:
            for framework in shell_script_frameworks(
                context.target_path, signatures.shell_script_frameworks
            ):
                profile.add_framework(framework)

        if profile.frameworks:
            context.checkpoints.log("LANG: frameworks", CheckpointCategory.MISC, ", ".join(profile.frameworks))


__all__ = [
    "SHELL_LANGUAGE",
    "FrameworkTaggingPass",
    "LanguageDetectionPass",
    "ProfileEvidence",
    "apply_language_rule",
    "apply_security_profile",
    "frameworks_in_text",
    "language_note",
    "manifest_text",
    "match_marker_rule",
    "match_name_rule",
    "matching_adjustments",
    "parse_runtime_version",
    "read_shebang",
    "shell_script_frameworks",
]
