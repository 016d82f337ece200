"""
binscope — static safe-analysis front-end.

File: src/binscope/control_plane/safe_analysis.py
Last updated: 2026-10-17

Purpose
- Score an unknown file or package without ever executing it.

What should be included in this file
- ``SafeAnalyzer`` with the six inspection phases and ``SafeAnalysisReport``.
- ``risk_level`` thresholds.

Functional requirements
- Only inspection helpers (``dpkg-deb``, ``ar``, ``strings``) are run; the target never is.
- A missing helper narrows the analysis and is recorded as a note, never as a failure.
- Completion is announced with a ``SAFE_ANALYSIS: completed`` SEC checkpoint.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Final

import structlog

from binscope.domain.models import CheckpointCategory, JSONValue
from binscope.enrichment.base import EnrichmentUnavailable, ToolRunner, ToolSpec, target_basename
from binscope.enrichment.signatures import SignatureRegistry, default_signatures
from binscope.observability.checkpoints import CheckpointLog

logger = structlog.get_logger(__name__)

LARGE_FILE_BYTES: Final[int] = 500 * 1024 * 1024
BIG_FILE_BYTES: Final[int] = 100 * 1024 * 1024
TINY_FILE_BYTES: Final[int] = 1024
ARCHIVE_WINDOW_LINES: Final[int] = 20
SUSPICIOUS_STRING_LIMIT: Final[int] = 10
NETWORK_STRING_LIMIT: Final[int] = 5
THREAT_HIT_LIMIT: Final[int] = 3
DANGEROUS_NAME_WEIGHT: Final[int] = 5
NETWORK_CAPABILITY_WEIGHT: Final[int] = 2


class RiskLevel(StrEnum):
    MINIMAL = "minimal"
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    CRITICAL = "critical"


def risk_level(score: int) -> RiskLevel:
    if score >= 15:
        return RiskLevel.CRITICAL
    if score >= 10:
        return RiskLevel.HIGH
    if score >= 5:
        return RiskLevel.MODERATE
    if score >= 2:
        return RiskLevel.LOW
    return RiskLevel.MINIMAL


@dataclass(slots=True)
class SafeAnalysisReport:
    path: str
    size_bytes: int = 0
    risk_score: int = 0
    dangerous_name_patterns: list[str] = field(default_factory=list)
    suspicious_name_patterns: list[str] = field(default_factory=list)
    archive_tool: str = ""
    archive_lines: list[str] = field(default_factory=list)
    install_scripts: int = 0
    removal_scripts: int = 0
    suspicious_strings: list[str] = field(default_factory=list)
    network_strings: list[str] = field(default_factory=list)
    threats: dict[str, list[str]] = field(default_factory=dict)
    notes: list[str] = field(default_factory=list)

    @property
    def level(self) -> RiskLevel:
        return risk_level(self.risk_score)

    @property
    def threat_count(self) -> int:
        return sum(len(hits) for hits in self.threats.values())

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "target": self.path,
            "size_bytes": self.size_bytes,
            "risk_score": self.risk_score,
            "risk_level": self.level.value,
            "dangerous_name_patterns": list(self.dangerous_name_patterns),
            "suspicious_name_patterns": list(self.suspicious_name_patterns),
            "archive": {
                "tool": self.archive_tool or None,
                "lines": list(self.archive_lines),
                "install_scripts": self.install_scripts,
                "removal_scripts": self.removal_scripts,
            },
            "suspicious_strings": list(self.suspicious_strings),
            "network_strings": list(self.network_strings),
            "threats": {name: list(hits) for name, hits in self.threats.items()},
            "threat_count": self.threat_count,
            "notes": list(self.notes),
            "executed": False,
        }


class SafeAnalyzer:
    """Six-phase static inspection: size, name, archive, strings, network, threats."""

    def __init__(
        self,
        *,
        runner: ToolRunner,
        checkpoints: CheckpointLog,
        signatures: SignatureRegistry | None = None,
        tool_timeout_seconds: float = 10.0,
    ) -> None:
        self._runner = runner
        self._checkpoints = checkpoints
        self._signatures = signatures if signatures is not None else default_signatures()
        self._timeout = tool_timeout_seconds

    def analyze(self, path: str) -> SafeAnalysisReport:
        report = SafeAnalysisReport(path=path)
        self._checkpoints.log("SAFE_ANALYSIS: started", CheckpointCategory.SEC, path)

        self._size_phase(report)
        self._filename_phase(report)
        self._archive_phase(report)
        strings = self._strings(report)
        if strings is not None:
            self._suspicious_strings_phase(report, strings)
            self._network_phase(report, strings)
            self._threat_phase(report, strings)

        self._checkpoints.log(
            "SAFE_ANALYSIS: completed",
            CheckpointCategory.SEC,
            f"risk={report.risk_score} level={report.level.value}",
        )
        logger.info(
            "safe analysis completed",
            risk_score=report.risk_score,
            level=report.level.value,
            threats=report.threat_count,
        )
        return report

    def _size_phase(self, report: SafeAnalysisReport) -> None:
        size = os.stat(report.path).st_size
        report.size_bytes = size
        if size > LARGE_FILE_BYTES:
            report.risk_score += 3
            report.notes.append("very large file")
        elif size > BIG_FILE_BYTES:
            report.risk_score += 1
            report.notes.append("large file")
        elif size < TINY_FILE_BYTES:
            report.risk_score += 2
            report.notes.append("unusually small file")

    def _filename_phase(self, report: SafeAnalysisReport) -> None:
        name = target_basename(report.path).lower()
        for pattern in self._signatures.dangerous_filename_patterns:
            if pattern in name:
                report.dangerous_name_patterns.append(pattern)
                report.risk_score += DANGEROUS_NAME_WEIGHT
        for pattern in self._signatures.suspicious_filename_patterns:
            if pattern in name:
                report.suspicious_name_patterns.append(pattern)
                report.risk_score += 1
        if report.dangerous_name_patterns:
            self._checkpoints.log(
                "SEC: dangerous_filename",
                CheckpointCategory.SEC,
                ", ".join(report.dangerous_name_patterns),
            )

    def _archive_phase(self, report: SafeAnalysisReport) -> None:
        listing = None
        for argv in (("dpkg-deb", "--info", report.path), ("ar", "-tv", report.path)):
            try:
                result = self._runner.run(
                    ToolSpec(argv=argv, timeout_seconds=self._timeout, max_lines=ARCHIVE_WINDOW_LINES)
                )
            except EnrichmentUnavailable as exc:
                logger.debug("archive helper unavailable", tool=argv[0], reason=str(exc))
                continue
            if result.exit_code == 0 and result.stdout.strip():
                listing = result
                break

        if listing is None:
            report.risk_score += 1
            report.notes.append("archive structure could not be inspected")
            return

        report.archive_tool = listing.argv[0]
        report.archive_lines = list(listing.lines[:ARCHIVE_WINDOW_LINES])
        for line in report.archive_lines:
            if any(marker in line for marker in self._signatures.install_script_markers):
                report.install_scripts += 1
                report.risk_score += 1
            if any(marker in line for marker in self._signatures.removal_script_markers):
                report.removal_scripts += 1
                report.risk_score += 1
        if len(report.archive_lines) >= ARCHIVE_WINDOW_LINES:
            report.risk_score += 1
            report.notes.append("archive listing truncated (many entries)")

    def _strings(self, report: SafeAnalysisReport) -> tuple[str, ...] | None:
        try:
            result = self._runner.run(
                ToolSpec(argv=("strings", report.path), timeout_seconds=self._timeout)
            )
        except EnrichmentUnavailable as exc:
            report.notes.append(f"string extraction unavailable: {exc}")
            return None
        return result.lines

    def _suspicious_strings_phase(self, report: SafeAnalysisReport, strings: tuple[str, ...]) -> None:
        pattern = self._signatures.suspicious_strings
        for line in strings:
            if len(report.suspicious_strings) >= SUSPICIOUS_STRING_LIMIT:
                break
            if pattern.search(line):
                report.suspicious_strings.append(line.strip())
                report.risk_score += 1

    def _network_phase(self, report: SafeAnalysisReport, strings: tuple[str, ...]) -> None:
        pattern = self._signatures.network_strings
        for line in strings:
            if len(report.network_strings) >= NETWORK_STRING_LIMIT:
                break
            if pattern.search(line):
                report.network_strings.append(line.strip())
        if report.network_strings:
            report.risk_score += NETWORK_CAPABILITY_WEIGHT

    def _threat_phase(self, report: SafeAnalysisReport, strings: tuple[str, ...]) -> None:
        for family, pattern in self._signatures.threat_families:
            hits = [line.strip() for line in strings if pattern.search(line)][:THREAT_HIT_LIMIT]
            report.threats[family] = hits
            report.risk_score += len(hits)
            if hits:
                self._checkpoints.log(
                    "SEC: threat_indicator", CheckpointCategory.SEC, f"{family}: {len(hits)}"
                )


__all__ = [
    "RiskLevel",
    "SafeAnalysisReport",
    "SafeAnalyzer",
    "risk_level",
]
