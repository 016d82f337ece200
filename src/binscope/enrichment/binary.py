"""
binscope — binary inspection passes (symbols, debug info, crash backtrace).

File: src/binscope/enrichment/binary.py
Last updated: 2026-10-17

Purpose
- Shell out to ``nm``, ``objdump``/``readelf`` and ``gdb`` and fold their text into findings.

Functional requirements
- Parsing is deliberately narrow: known row shapes and exact prefixes only.
- Missing helpers raise ``EnrichmentUnavailable``; the pipeline records the pass as unavailable.
- The debugger runs only for signal-terminated targets and is bounded by its own timeout.
"""

from __future__ import annotations

import os
import re
import shlex
import tempfile
from collections.abc import Iterable
from typing import Final

from binscope.domain.models import ExecutionMode, SecurityFindings
from binscope.enrichment.base import (
    SECURITY_GATE,
    EnrichmentContext,
    EnrichmentUnavailable,
    FeatureGatedPass,
    ToolResult,
)
from binscope.enrichment.exit_codes import SIGNAL_EXIT_BASE, decode_exit

MAX_SYMBOL_HITS: Final[int] = 10
OBJDUMP_LINES: Final[int] = 50
READELF_LINES: Final[int] = 20
DEBUG_MARKERS: Final[tuple[str, ...]] = (".debug_", "DWARF")
SOURCE_SUFFIXES: Final[tuple[str, ...]] = (".cpp", ".c")

_FRAME_ZERO = re.compile(
    r"^#0\s+(?:0x[0-9a-fA-F]+\s+in\s+)?(?P<function>[^\s(]+)\s*\(.*\)\s+at\s+"
    r"(?P<file>[^:\s]+):(?P<line>\d+)"
)


def parse_nm_symbols(lines: Iterable[str]) -> list[tuple[str, str]]:
    """Return ``(type, name)`` rows from ``nm`` output.

    Defined symbols are ``addr type name``; undefined dynamic imports are ``type name``.
    """

    rows: list[tuple[str, str]] = []
    for line in lines:
        fields = line.split()
        if len(fields) >= 3:
            rows.append((fields[1], fields[2]))
        elif len(fields) == 2 and len(fields[0]) == 1:
            rows.append((fields[0], fields[1]))
    return rows


def scan_symbols(
    symbols: Iterable[tuple[str, str]],
    dangerous: Iterable[str],
    findings: SecurityFindings,
) -> list[str]:
    """Flag dangerous symbols; returns the matched names in discovery order."""

    dangerous_names = tuple(dangerous)
    hits: list[str] = []
    for _symbol_type, name in symbols:
        if len(hits) >= MAX_SYMBOL_HITS:
            break
        marker = next((item for item in dangerous_names if item in name), None)
        if marker is None:
            continue
        hits.append(name)
        findings.add_vulnerable_function(name)
        if "buffer_overflow" in name:
            findings.buffer_overflow_risk = 5
            findings.vulnerability_details = "Buffer overflow function detected in binary symbols"
        elif "use_after_free" in name:
            findings.use_after_free_risk = 5
            findings.vulnerability_details = "Use-after-free function detected in binary symbols"
        elif "format_string" in name:
            findings.format_string_risk = 5
            findings.vulnerability_details = "Format string vulnerability function detected"
        elif "strcpy" in name or "sprintf" in name:
            findings.buffer_overflow_risk += 2
            findings.vulnerability_details = "Unsafe string function detected in binary"
    findings.clamp()
    return hits


def scan_symbol_table(
    lines: Iterable[str], markers: Iterable[str], findings: SecurityFindings
) -> bool:
    """Process ``objdump -t`` rows; returns whether debug sections were seen."""

    symbol_markers = tuple(markers)
    debug = False
    for line in lines:
        if any(marker in line for marker in DEBUG_MARKERS):
            debug = True
        if any(marker in line for marker in symbol_markers):
            fields = line.split()
            if len(fields) >= 5:
                findings.add_vulnerable_function(fields[-1])
    return debug


def source_file_from_debug_info(lines: Iterable[str]) -> str | None:
    for line in lines:
        if "DW_AT_name" not in line:
            continue
        token = line.rsplit(None, 1)[-1] if line.strip() else ""
        name = token.rsplit("/", 1)[-1]
        if name.endswith(SOURCE_SUFFIXES):
            return name
    return None


def parse_backtrace(lines: Iterable[str], findings: SecurityFindings, exit_code: int) -> bool:
    """Fill crash location and stack frames from ``gdb`` batch output."""

    located = False
    for line in lines:
        text = line.strip()
        if not text.startswith("#"):
            continue
        findings.add_stack_frame(text)
        if located:
            continue
        match = _FRAME_ZERO.match(text)
        if match is None:
            continue
        located = True
        location = findings.crash_location
        location.function = match.group("function")
        location.line = int(match.group("line"))
        location.source_file = match.group("file")
        findings.vulnerability_details = (
            f"Crash in function '{location.function}' at line {location.line} in file "
            f"'{location.source_file}' - Exit code {exit_code} indicates "
            f"{decode_exit(exit_code).description}"
        )
    return located


def gdb_script(argv: Iterable[str]) -> str:
    run_line = " ".join(["run", *(shlex.quote(item) for item in argv)])
    return "\n".join(
        ["set confirm off", "set pagination off", run_line, "bt", "info registers", "quit", ""]
    )


class SymbolScanPass(FeatureGatedPass):
    name = "symbol_scan"
    gate = SECURITY_GATE

    def run(self, context: EnrichmentContext) -> None:
        listing = _symbol_listing(context)
        findings = context.result.security
        hits = scan_symbols(
            parse_nm_symbols(listing.lines), context.signatures.dangerous_symbols, findings
        )
        for name in hits:
            context.security_checkpoint("SEC: dangerous_symbol", name)
        context.logger.debug("symbols scanned", hits=len(hits), tool=listing.argv[0])


class DebugProbePass(FeatureGatedPass):
    name = "debug_probe"
    gate = SECURITY_GATE

    def run(self, context: EnrichmentContext) -> None:
        findings = context.result.security
        probed = False

        try:
            table = context.run_tool("objdump", "-t", context.target_path, max_lines=OBJDUMP_LINES)
        except EnrichmentUnavailable as exc:
            context.logger.debug("objdump unavailable", reason=str(exc))
        else:
            probed = True
            findings.has_debug_symbols = scan_symbol_table(
                table.lines, context.signatures.symbol_table_markers, findings
            )

        try:
            info = context.run_tool(
                "readelf", "--debug-dump=info", context.target_path, max_lines=READELF_LINES
            )
        except EnrichmentUnavailable as exc:
            context.logger.debug("readelf unavailable", reason=str(exc))
        else:
            probed = True
            source = source_file_from_debug_info(info.lines)
            if source and not findings.crash_location.source_file:
                findings.crash_location.source_file = source

        if not probed:
            raise EnrichmentUnavailable("neither objdump nor readelf is available")


class CrashBacktracePass(FeatureGatedPass):
    name = "crash_backtrace"
    gate = SECURITY_GATE

    def applies(self, context: EnrichmentContext) -> bool:
        execution = context.result.execution
        return (
            super().applies(context)
            and context.config.mode is ExecutionMode.DIRECT_EXEC
            and execution.ran
            and execution.exit_code >= SIGNAL_EXIT_BASE
            and not execution.timed_out
        )

    def run(self, context: EnrichmentContext) -> None:
        handle, script_path = tempfile.mkstemp(prefix="binscope-", suffix=".gdb")
        try:
            with os.fdopen(handle, "w", encoding="utf-8") as script:
                script.write(gdb_script(context.target_argv))
            output = context.run_tool(
                "gdb",
                "-quiet",
                "-batch",
                "-x",
                script_path,
                context.target_path,
                timeout=context.config.settings.debugger_timeout_seconds,
            )
        finally:
            os.unlink(script_path)

        findings = context.result.security
        exit_code = context.result.execution.exit_code
        if parse_backtrace(output.lines, findings, exit_code):
            location = findings.crash_location
            context.security_checkpoint(
                "SEC: crash_located",
                f"{location.function} {location.source_file}:{location.line}",
            )


def _symbol_listing(context: EnrichmentContext) -> ToolResult:
    dynamic: ToolResult | None = None
    try:
        dynamic = context.run_tool("nm", "-D", context.target_path)
    except EnrichmentUnavailable:
        dynamic = None
    if dynamic is not None and dynamic.exit_code == 0 and dynamic.stdout.strip():
        return dynamic

    listing = context.run_tool("nm", context.target_path)
    if listing.exit_code != 0 and not listing.stdout.strip():
        raise EnrichmentUnavailable(f"nm could not read symbols: {listing.stderr.strip()}")
    return listing


__all__ = [
    "MAX_SYMBOL_HITS",
    "CrashBacktracePass",
    "DebugProbePass",
    "SymbolScanPass",
    "gdb_script",
    "parse_backtrace",
    "parse_nm_symbols",
    "scan_symbol_table",
    "scan_symbols",
    "source_file_from_debug_info",
]
