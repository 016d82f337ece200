"""Executable CLI entrypoint for ``binscope``."""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence


class ExitCode(IntEnum):
    """Deterministic process exit-code contract."""

    SUCCESS = 0
    FAILURE = 1
    IO_SETUP_ERROR = 2
    INTERNAL_ERROR = 3
    INTERRUPTED = 130


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Entrypoint used by ``python -m binscope`` and script shims."""

    try:
        from binscope.ui.cli import run_cli

        return _normalize_exit_code(run_cli(argv))
    except SystemExit as exc:  # pragma: no cover - defensive in case argparse bubbles out.
        return _normalize_exit_code(exc.code)
    except BaseException as exc:  # noqa: BLE001 - CLI boundary normalization.
        exit_code = _route_exception(exc)
        _emit_failure(exc, exit_code)
        return int(exit_code)


def _normalize_exit_code(raw_code: object) -> int:
    if isinstance(raw_code, int) and raw_code in {int(code) for code in ExitCode}:
        return raw_code
    if raw_code is None:
        return int(ExitCode.SUCCESS)
    if isinstance(raw_code, str) and raw_code.strip():
        _write_stderr(raw_code.strip())
    return int(ExitCode.INTERNAL_ERROR)


def _route_exception(exc: BaseException) -> ExitCode:
    failure_types = _load_failure_types()
    io_setup_type = _load_io_setup_type()

    if isinstance(exc, KeyboardInterrupt):
        return ExitCode.INTERRUPTED
    for item in _iter_exception_chain(exc):
        if io_setup_type is not None and isinstance(item, io_setup_type):
            return ExitCode.IO_SETUP_ERROR
        if isinstance(item, failure_types):
            return ExitCode.FAILURE
    return ExitCode.INTERNAL_ERROR


def _load_failure_types() -> tuple[type[BaseException], ...]:
    try:
        from binscope.config.loader import ConfigLoadError
        from binscope.config.run import ConfigError
        from binscope.config.schema import ConfigValidationError
        from binscope.sandbox.validator import ExecutableValidationError
    except Exception:  # pragma: no cover - defensive import fallback.
        return ()
    return (ConfigError, ConfigLoadError, ConfigValidationError, ExecutableValidationError)


def _load_io_setup_type() -> type[BaseException] | None:
    try:
        from binscope.sandbox.supervisor import IoSetupError
    except Exception:  # pragma: no cover - defensive import fallback.
        return None
    return IoSetupError


def _iter_exception_chain(exc: BaseException) -> list[BaseException]:
    seen: set[int] = set()
    items: list[BaseException] = []
    current: BaseException | None = exc
    while current is not None:
        marker = id(current)
        if marker in seen:
            break
        seen.add(marker)
        items.append(current)
        if current.__cause__ is not None:
            current = current.__cause__
            continue
        if current.__context__ is not None and not current.__suppress_context__:
            current = current.__context__
            continue
        break
    return items


def _emit_failure(exc: BaseException, exit_code: ExitCode) -> None:
    if exit_code is ExitCode.INTERNAL_ERROR:
        traceback.print_exception(type(exc), exc, exc.__traceback__, file=sys.stderr)
        return
    if exit_code is ExitCode.INTERRUPTED:
        _write_stderr("interrupted")
        return
    _write_stderr(f"error: {str(exc).strip() or exc.__class__.__name__}")


def _write_stderr(message: str) -> None:
    sys.stderr.write(message.rstrip("\n") + "\n")


__all__ = ["ExitCode", "cli_entrypoint"]
