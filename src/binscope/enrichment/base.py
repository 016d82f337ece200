"""
binscope — enrichment contracts and the external tool runner.

File: src/binscope/enrichment/base.py
Last updated: 2026-10-17

Purpose
- Define the command/result contract used by every pass that shells out.
- Provide the local runner and the pass protocol the pipeline drives.

What should be included in this file
- ``ToolSpec``/``ToolResult``, the ``ToolRunner`` protocol and ``LocalToolRunner``.
- ``EnrichmentUnavailable`` and the per-run ``EnrichmentContext``.

Functional requirements
- Missing helpers and timeouts surface as ``EnrichmentUnavailable``; never as crashes.
- Output capture is bounded and decoding is lossless-tolerant (``errors="replace"``).
"""

from __future__ import annotations

import os
import shutil
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar, Final, Protocol, runtime_checkable

import structlog

from binscope.config.run import RunConfig
from binscope.domain.models import AnalysisResult, CheckpointCategory, Feature
from binscope.enrichment.signatures import SignatureRegistry, default_signatures
from binscope.observability.checkpoints import CheckpointLog

DEFAULT_MAX_OUTPUT_CHARS = 200_000


class EnrichmentUnavailable(RuntimeError):
    """An external helper is missing, failed to start, or timed out."""


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """Invocation of one external helper."""

    argv: tuple[str, ...]
    timeout_seconds: float
    max_lines: int | None = None
    cwd: str | None = None

    def __post_init__(self) -> None:
        if not self.argv or not all(isinstance(item, str) and item for item in self.argv):
            raise ValueError("ToolSpec.argv must be a non-empty sequence of non-empty strings")
        if self.timeout_seconds <= 0:
            raise ValueError("ToolSpec.timeout_seconds must be > 0")
        if self.max_lines is not None and self.max_lines <= 0:
            raise ValueError("ToolSpec.max_lines must be > 0")

    @property
    def program(self) -> str:
        return self.argv[0]


@dataclass(frozen=True, slots=True)
class ToolResult:
    argv: tuple[str, ...]
    exit_code: int
    stdout: str
    stderr: str = ""
    duration_ms: int = 0

    @property
    def lines(self) -> tuple[str, ...]:
        return tuple(self.stdout.splitlines())

    @property
    def output(self) -> str:
        """Combined stdout and stderr (some helpers print versions on stderr)."""

        if self.stdout and self.stderr:
            return f"{self.stdout}\n{self.stderr}"
        return self.stdout or self.stderr


@runtime_checkable
class ToolRunner(Protocol):
    """Pluggable execution of external helpers (replaced by fakes in tests)."""

    def run(self, spec: ToolSpec) -> ToolResult: ...


class LocalToolRunner:
    """Run helpers with ``subprocess.run`` under a timeout, stdin closed."""

    def __init__(self, *, max_output_chars: int | None = DEFAULT_MAX_OUTPUT_CHARS) -> None:
        self._max_output_chars = max_output_chars

    def run(self, spec: ToolSpec) -> ToolResult:
        if shutil.which(spec.program) is None and not os.path.isabs(spec.program):
            raise EnrichmentUnavailable(f"{spec.program} is not installed")

        started_ns = time.monotonic_ns()
        try:
            completed = subprocess.run(
                list(spec.argv),
                stdin=subprocess.DEVNULL,
                capture_output=True,
                timeout=spec.timeout_seconds,
                cwd=spec.cwd,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise EnrichmentUnavailable(
                f"{spec.program} timed out after {spec.timeout_seconds:.3f}s"
            ) from exc
        except OSError as exc:
            raise EnrichmentUnavailable(f"{spec.program} could not be started: {exc}") from exc

        return ToolResult(
            argv=spec.argv,
            exit_code=completed.returncode,
            stdout=self._bounded(completed.stdout, spec.max_lines),
            stderr=self._bounded(completed.stderr, spec.max_lines),
            duration_ms=_elapsed_ms(started_ns),
        )

    def _bounded(self, raw: bytes | None, max_lines: int | None) -> str:
        text = _normalize_output_text(raw or b"")
        if max_lines is not None:
            text = "\n".join(text.splitlines()[:max_lines])
        return _truncate_text(text, self._max_output_chars)


@dataclass(slots=True)
class EnrichmentContext:
    """Everything a pass may read or write for one run."""

    config: RunConfig
    result: AnalysisResult
    checkpoints: CheckpointLog
    runner: ToolRunner
    signatures: SignatureRegistry = field(default_factory=default_signatures)
    logger: Any = field(default_factory=lambda: structlog.get_logger("binscope.enrichment"))

    @property
    def target_path(self) -> str:
        return self.config.target_path

    @property
    def basename(self) -> str:
        return target_basename(self.config.target_path)

    @property
    def target_argv(self) -> tuple[str, ...]:
        return self.config.target_argv

    @property
    def tool_timeout(self) -> float:
        return self.config.settings.tool_timeout_seconds

    def has(self, feature: Feature) -> bool:
        return self.config.has(feature)

    def run_tool(self, *argv: str, max_lines: int | None = None, timeout: float | None = None) -> ToolResult:
        return self.runner.run(
            ToolSpec(
                argv=tuple(argv),
                timeout_seconds=timeout if timeout is not None else self.tool_timeout,
                max_lines=max_lines,
            )
        )

    def security_checkpoint(self, checkpoint_id: str, context: str = "") -> None:
        self.checkpoints.log(checkpoint_id, CheckpointCategory.SEC, context)


class EnrichmentPass(Protocol):
    """One ordered step of the enrichment pipeline."""

    name: str

    def applies(self, context: EnrichmentContext) -> bool: ...

    def run(self, context: EnrichmentContext) -> None: ...


class FeatureGatedPass:
    """Base for passes enabled by any one of ``gate``."""

    name: ClassVar[str] = ""
    gate: ClassVar[frozenset[Feature]] = frozenset()

    def applies(self, context: EnrichmentContext) -> bool:
        return any(context.has(feature) for feature in self.gate)

    def run(self, context: EnrichmentContext) -> None:
        raise NotImplementedError


PROFILE_GATE: Final[frozenset[Feature]] = frozenset({Feature.DEEP, Feature.PERFORMANCE})
SECURITY_GATE: Final[frozenset[Feature]] = frozenset({Feature.SECURITY})
DEEP_GATE: Final[frozenset[Feature]] = frozenset({Feature.DEEP})
NETWORK_GATE: Final[frozenset[Feature]] = frozenset({Feature.NETWORK})


def target_basename(path: str) -> str:
    name = Path(path).name
    return name or path


def _elapsed_ms(started_ns: int) -> int:
    delta_ns = time.monotonic_ns() - started_ns
    if delta_ns < 0:
        return 0
    return delta_ns // 1_000_000


def _normalize_output_text(raw: bytes) -> str:
    text = raw.decode("utf-8", errors="replace")
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _truncate_text(text: str, max_chars: int | None) -> str:
    if max_chars is None or len(text) <= max_chars:
        return text
    omitted = len(text) - max_chars
    return f"{text[:max_chars]}\n...[truncated {omitted} chars]"


__all__ = [
    "DEEP_GATE",
    "DEFAULT_MAX_OUTPUT_CHARS",
    "NETWORK_GATE",
    "PROFILE_GATE",
    "SECURITY_GATE",
    "EnrichmentContext",
    "EnrichmentPass",
    "EnrichmentUnavailable",
    "FeatureGatedPass",
    "LocalToolRunner",
    "ToolResult",
    "ToolRunner",
    "ToolSpec",
    "target_basename",
]
