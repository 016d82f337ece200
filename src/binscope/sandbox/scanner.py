"""Streaming token counter for child stdout/stderr chunks."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Final

from binscope.domain.models import IoStats

VERBOSE_TOKENS: Final[tuple[bytes, ...]] = (b"verbose", b"VERBOSE", b"==>", b"<==")
ERROR_TOKENS: Final[tuple[bytes, ...]] = (b"error", b"ERROR")
WARNING_TOKENS: Final[tuple[bytes, ...]] = (b"warning", b"WARNING")

_ALL_TOKENS: Final[tuple[bytes, ...]] = VERBOSE_TOKENS + ERROR_TOKENS + WARNING_TOKENS
CARRY_BYTES: Final[int] = max(len(token) for token in _ALL_TOKENS) - 1


class Stream(StrEnum):
    STDOUT = "stdout"
    STDERR = "stderr"


@dataclass(frozen=True, slots=True)
class ScanDelta:
    """Counter increments contributed by one chunk."""

    byte_count: int = 0
    verbose: int = 0
    errors: int = 0
    warnings: int = 0


class OutputScanner:
    """Count byte totals and case-sensitive marker tokens without buffering whole streams.

    Each stream keeps the trailing ``CARRY_BYTES`` of its previous chunk. A token is counted
    only when it ends inside the new chunk, so a token split across two reads is counted
    once and never twice.
    """

    def __init__(self, stats: IoStats | None = None) -> None:
        self._stats = stats if stats is not None else IoStats()
        self._carry: dict[Stream, bytes] = {Stream.STDOUT: b"", Stream.STDERR: b""}

    @property
    def stats(self) -> IoStats:
        return self._stats

    def feed(self, stream: Stream | str, chunk: bytes) -> ScanDelta:
        key = Stream(stream)
        if not chunk:
            return ScanDelta()

        carry = self._carry[key]
        window = carry + chunk
        boundary = len(carry)

        delta = ScanDelta(
            byte_count=len(chunk),
            verbose=_count_tokens(window, VERBOSE_TOKENS, boundary),
            errors=_count_tokens(window, ERROR_TOKENS, boundary),
            warnings=_count_tokens(window, WARNING_TOKENS, boundary),
        )
        self._carry[key] = window[-CARRY_BYTES:] if CARRY_BYTES else b""

        if key is Stream.STDOUT:
            self._stats.stdout_bytes += delta.byte_count
        else:
            self._stats.stderr_bytes += delta.byte_count
        self._stats.verbose_msgs += delta.verbose
        self._stats.error_msgs += delta.errors
        self._stats.warning_msgs += delta.warnings
        return delta

    def reset(self) -> None:
        for key in self._carry:
            self._carry[key] = b""


def _count_tokens(window: bytes, tokens: tuple[bytes, ...], boundary: int) -> int:
    total = 0
    for token in tokens:
        start = 0
        while True:
            index = window.find(token, start)
            if index < 0:
                break
            if index + len(token) > boundary:
                total += 1
            start = index + len(token)
    return total


__all__ = [
    "CARRY_BYTES",
    "ERROR_TOKENS",
    "VERBOSE_TOKENS",
    "WARNING_TOKENS",
    "OutputScanner",
    "ScanDelta",
    "Stream",
]
