"""Executable gate: reject unsafe or missing targets before anything is forked."""

from __future__ import annotations

import os
import stat
from dataclasses import dataclass
from pathlib import Path

import structlog

from binscope.constants import SHELL_METACHARACTERS
from binscope.domain.models import CheckpointCategory
from binscope.observability.checkpoints import CheckpointLog

_FALLBACK_PATH_MAX = 4096

logger = structlog.get_logger(__name__)


class ExecutableValidationError(ValueError):
    """Target path is empty, unsafe, missing, or not a regular file."""


@dataclass(frozen=True, slots=True)
class ValidationReport:
    path: Path
    size_bytes: int
    permissions: int
    owner_executable: bool
    warnings: tuple[str, ...] = ()


def validate_executable(
    path: str,
    *,
    checkpoints: CheckpointLog | None = None,
    path_max: int | None = None,
) -> ValidationReport:
    """Validate ``path`` as a runnable regular file; missing owner-execute only warns."""

    limit = path_max if path_max is not None else _path_max()
    try:
        report = _validate(path, limit)
    except ExecutableValidationError as exc:
        if checkpoints is not None:
            checkpoints.log("VALIDATION: executable_rejected", CheckpointCategory.SEC, str(exc))
        raise

    for warning in report.warnings:
        logger.warning(warning, target=str(report.path))
    if checkpoints is not None:
        checkpoints.log(
            "VALIDATION: executable_validated",
            CheckpointCategory.SEC,
            str(report.path),
        )
    return report


def _validate(path: str, limit: int) -> ValidationReport:
    if not isinstance(path, str) or not path:
        raise ExecutableValidationError("target path is empty")
    if len(os.fsencode(path)) >= limit:
        raise ExecutableValidationError(f"target path exceeds the system limit of {limit} bytes")
    found = sorted(char for char in SHELL_METACHARACTERS if char in path)
    if found:
        raise ExecutableValidationError(
            f"target path contains shell metacharacters: {' '.join(found)}"
        )

    target = Path(path)
    try:
        info = target.stat()
    except FileNotFoundError as exc:
        raise ExecutableValidationError(f"target does not exist: {path}") from exc
    except OSError as exc:
        raise ExecutableValidationError(f"cannot stat target {path}: {exc.strerror}") from exc

    if not stat.S_ISREG(info.st_mode):
        raise ExecutableValidationError(f"target is not a regular file: {path}")

    owner_executable = bool(info.st_mode & stat.S_IXUSR)
    warnings: tuple[str, ...] = ()
    if not owner_executable:
        warnings = (f"target is not marked executable for its owner: {path}",)

    return ValidationReport(
        path=target,
        size_bytes=info.st_size,
        permissions=stat.S_IMODE(info.st_mode),
        owner_executable=owner_executable,
        warnings=warnings,
    )


def _path_max() -> int:
    try:
        value = os.pathconf("/", "PC_PATH_MAX")
    except (OSError, ValueError):
        return _FALLBACK_PATH_MAX
    return value if value > 0 else _FALLBACK_PATH_MAX


__all__ = ["ExecutableValidationError", "ValidationReport", "validate_executable"]
