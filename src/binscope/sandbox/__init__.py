"""Sandbox plane: executable validation, child supervision, output scanning and sampling."""

from binscope.sandbox.sampling import ProcessSampler, PsutilProcessSampler
from binscope.sandbox.scanner import OutputScanner, ScanDelta, Stream
from binscope.sandbox.supervisor import ChildSupervisor, IoSetupError, SupervisorOutcome
from binscope.sandbox.validator import (
    ExecutableValidationError,
    ValidationReport,
    validate_executable,
)

__all__ = [
    "ChildSupervisor",
    "ExecutableValidationError",
    "IoSetupError",
    "OutputScanner",
    "ProcessSampler",
    "PsutilProcessSampler",
    "ScanDelta",
    "Stream",
    "SupervisorOutcome",
    "ValidationReport",
    "validate_executable",
]
