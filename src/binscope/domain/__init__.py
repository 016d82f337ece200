"""
binscope — domain layer

File: src/binscope/domain/__init__.py
Last updated: 2026-10-17

Purpose
- Domain types shared across planes: run enums, Checkpoint, and the AnalysisResult accumulator.

Functional requirements
- Keep the domain layer free of IO side effects.
"""

from __future__ import annotations

from binscope.domain.models import (
    AnalysisResult,
    Checkpoint,
    CheckpointCategory,
    Classification,
    CrashLocation,
    ExecutionMode,
    ExecutionStats,
    ExitTag,
    Feature,
    IoStats,
    LanguageProfile,
    MemoryStats,
    NetworkProfile,
    OutputFormat,
    SecurityFindings,
    ToolClass,
    Verbosity,
)

__all__ = [
    "AnalysisResult",
    "Checkpoint",
    "CheckpointCategory",
    "Classification",
    "CrashLocation",
    "ExecutionMode",
    "ExecutionStats",
    "ExitTag",
    "Feature",
    "IoStats",
    "LanguageProfile",
    "MemoryStats",
    "NetworkProfile",
    "OutputFormat",
    "SecurityFindings",
    "ToolClass",
    "Verbosity",
]
