"""
binscope — exit decoder.

File: src/binscope/enrichment/exit_codes.py
Last updated: 2026-10-17

Purpose
- Map a raw exit code to a tagged outcome, a description, and a security delta.

Functional requirements
- Pure and total: every integer decodes to a known tag.
- The security delta depends only on the code.
- Signal exits use the shell convention ``128 + signum``.
"""

from __future__ import annotations

import os
import signal
from dataclasses import dataclass
from typing import Final

from binscope.domain.models import ExitTag, SecurityFindings

SIGNAL_EXIT_BASE: Final[int] = 128
_SIGNAL_EXIT_CEILING: Final[int] = 192


@dataclass(frozen=True, slots=True)
class SecurityDelta:
    """Risk increments and optional score/classification implied by an exit code."""

    buffer_overflow: int = 0
    use_after_free: int = 0
    format_string: int = 0
    null_pointer: int = 0
    integer_overflow: int = 0
    uninitialized_memory: int = 0
    memory_leak: int = 0
    score: int | None = None
    classification: str | None = None

    @property
    def is_neutral(self) -> bool:
        return self == _NEUTRAL

    def apply(self, findings: SecurityFindings) -> None:
        findings.buffer_overflow_risk += self.buffer_overflow
        findings.use_after_free_risk += self.use_after_free
        findings.format_string_risk += self.format_string
        findings.null_pointer_risk += self.null_pointer
        findings.integer_overflow_risk += self.integer_overflow
        findings.uninitialized_memory_risk += self.uninitialized_memory
        findings.memory_leak_risk += self.memory_leak
        if self.score is not None:
            findings.overall_security_score = self.score


_NEUTRAL: Final[SecurityDelta] = SecurityDelta()


@dataclass(frozen=True, slots=True)
class ExitDecoding:
    code: int
    tag: ExitTag
    description: str
    signal_number: int | None = None
    security_delta: SecurityDelta = _NEUTRAL

    @property
    def signaled(self) -> bool:
        return self.signal_number is not None


@dataclass(frozen=True, slots=True)
class _KnownExit:
    tag: ExitTag
    description: str
    delta: SecurityDelta = _NEUTRAL


_KNOWN_EXITS: Final[dict[int, _KnownExit]] = {
    0: _KnownExit(
        ExitTag.SUCCESS,
        "Success",
        SecurityDelta(score=9, classification="execution_success"),
    ),
    1: _KnownExit(
        ExitTag.GENERIC_ERROR,
        "General Error",
        SecurityDelta(score=7, classification="standard_error"),
    ),
    2: _KnownExit(
        ExitTag.GENERIC_ERROR,
        "Misuse of Shell Builtin",
        SecurityDelta(score=7, classification="standard_error"),
    ),
    126: _KnownExit(ExitTag.NOT_EXECUTABLE, "Command Cannot Execute"),
    127: _KnownExit(ExitTag.NOT_FOUND, "Command Not Found"),
    128: _KnownExit(ExitTag.INVALID_EXIT, "Invalid Argument to Exit"),
    130: _KnownExit(ExitTag.INTERRUPTED, "Script Terminated by Ctrl-C"),
    132: _KnownExit(
        ExitTag.CODE_CORRUPTION,
        "SIGILL - Illegal Instruction",
        SecurityDelta(buffer_overflow=4, score=2, classification="code_corruption"),
    ),
    133: _KnownExit(
        ExitTag.DEBUG_TRAP,
        "SIGTRAP - Trace/Breakpoint Trap",
        SecurityDelta(score=6, classification="debug_trap"),
    ),
    134: _KnownExit(
        ExitTag.HEAP_CORRUPTION,
        "SIGABRT - Abort Signal",
        SecurityDelta(
            use_after_free=5,
            memory_leak=4,
            score=1,
            classification="critical_heap_corruption",
        ),
    ),
    135: _KnownExit(
        ExitTag.MEMORY_ALIGNMENT,
        "SIGBUS - Bus Error",
        SecurityDelta(
            buffer_overflow=4,
            uninitialized_memory=3,
            score=2,
            classification="memory_alignment_error",
        ),
    ),
    136: _KnownExit(
        ExitTag.ARITHMETIC_OVERFLOW,
        "SIGFPE - Floating Point Exception",
        SecurityDelta(integer_overflow=5, score=2, classification="arithmetic_error"),
    ),
    137: _KnownExit(
        ExitTag.RESOURCE_EXHAUSTION,
        "SIGKILL - Process Killed",
        SecurityDelta(memory_leak=3, score=4, classification="resource_exhaustion"),
    ),
    139: _KnownExit(
        ExitTag.MEMORY_CORRUPTION,
        "SIGSEGV - Segmentation Fault",
        SecurityDelta(
            buffer_overflow=5,
            use_after_free=5,
            null_pointer=5,
            score=1,
            classification="critical_memory_corruption",
        ),
    ),
}

KNOWN_TAGS: Final[frozenset[ExitTag]] = frozenset(ExitTag)


def decode_exit(code: int) -> ExitDecoding:
    """Decode an analyzer-visible exit code (``0..255`` or ``128 + signum``)."""

    signal_number = _signal_for(code)
    known = _KNOWN_EXITS.get(code)
    if known is not None:
        return ExitDecoding(
            code=code,
            tag=known.tag,
            description=known.description,
            signal_number=signal_number,
            security_delta=known.delta,
        )
    if signal_number is not None:
        return ExitDecoding(
            code=code,
            tag=ExitTag.SIGNAL_OTHER,
            description=f"{signal_name(signal_number)} - Signal-based termination",
            signal_number=signal_number,
        )
    return ExitDecoding(code=code, tag=ExitTag.UNKNOWN, description="Unknown error code")


def timeout_decoding(code: int) -> ExitDecoding:
    """Outcome for a child the supervisor terminated at its wall-clock ceiling."""

    return ExitDecoding(
        code=code,
        tag=ExitTag.TIMEOUT,
        description="Terminated after exceeding the wall-clock limit",
        signal_number=_signal_for(code),
    )


def exit_code_from_returncode(returncode: int) -> int:
    """Convert a ``subprocess`` return code (negative for signals) to ``128 + signum``."""

    if returncode < 0:
        return SIGNAL_EXIT_BASE - returncode
    return returncode


def exit_code_from_wait_status(status: int) -> int:
    """Convert a raw ``waitpid`` status into the shell-style exit code."""

    if os.WIFSIGNALED(status):
        return SIGNAL_EXIT_BASE + os.WTERMSIG(status)
    return os.WEXITSTATUS(status)


def signal_name(signal_number: int) -> str:
    try:
        return signal.Signals(signal_number).name
    except ValueError:
        return f"SIG{signal_number}"


def _signal_for(code: int) -> int | None:
    if SIGNAL_EXIT_BASE < code < _SIGNAL_EXIT_CEILING:
        return code - SIGNAL_EXIT_BASE
    return None


__all__ = [
    "KNOWN_TAGS",
    "SIGNAL_EXIT_BASE",
    "ExitDecoding",
    "SecurityDelta",
    "decode_exit",
    "exit_code_from_returncode",
    "exit_code_from_wait_status",
    "signal_name",
    "timeout_decoding",
]
