"""
binscope — settings schema.

File: src/binscope/config/schema.py
Last updated: 2026-10-17

Purpose
- Define the default settings mapping, deterministic deep-merge, and strict validation.
- Materialize validated settings into the typed ``AnalyzerSettings`` record.

Functional requirements
- Unknown sections/keys are rejected; every issue is reported, not only the first.
- Numeric knobs are range-checked before anything is executed.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict

from binscope.constants import (
    CHECKPOINT_CAPACITY,
    DEBUGGER_TIMEOUT_SECONDS,
    KILL_GRACE_SECONDS,
    MEMORY_STEP_KB,
    POLL_INTERVAL_SECONDS,
    READ_CHUNK_BYTES,
    SAMPLE_SLEEP_SECONDS,
    TOOL_TIMEOUT_SECONDS,
)

ValueKind = Literal["str", "int", "float", "bool"]


class SupervisorSettings(TypedDict):
    poll_interval_seconds: float
    sample_sleep_seconds: float
    read_chunk_bytes: int
    timeout_seconds: float
    kill_grace_seconds: float
    memory_step_kb: int
    forward_output: bool


class CheckpointSettings(TypedDict):
    capacity: int


class EnrichmentSettings(TypedDict):
    tool_timeout_seconds: float
    debugger_timeout_seconds: float


class LoggingSettings(TypedDict):
    level: str
    file: str


class ReportSettings(TypedDict):
    mirror_target_exit: bool
    include_checkpoints: bool


class SettingsConfig(TypedDict):
    supervisor: SupervisorSettings
    checkpoints: CheckpointSettings
    enrichment: EnrichmentSettings
    logging: LoggingSettings
    report: ReportSettings


DEFAULT_SETTINGS: Final[SettingsConfig] = {
    "supervisor": {
        "poll_interval_seconds": POLL_INTERVAL_SECONDS,
        "sample_sleep_seconds": SAMPLE_SLEEP_SECONDS,
        "read_chunk_bytes": READ_CHUNK_BYTES,
        "timeout_seconds": 0.0,
        "kill_grace_seconds": KILL_GRACE_SECONDS,
        "memory_step_kb": MEMORY_STEP_KB,
        "forward_output": True,
    },
    "checkpoints": {
        "capacity": CHECKPOINT_CAPACITY,
    },
    "enrichment": {
        "tool_timeout_seconds": TOOL_TIMEOUT_SECONDS,
        "debugger_timeout_seconds": DEBUGGER_TIMEOUT_SECONDS,
    },
    "logging": {
        "level": "",
        "file": "",
    },
    "report": {
        "mirror_target_exit": True,
        "include_checkpoints": False,
    },
}

_LOG_LEVELS: Final[frozenset[str]] = frozenset({"", "DEBUG", "INFO", "WARNING", "ERROR"})


@dataclass(frozen=True, slots=True)
class _FieldRule:
    kind: ValueKind
    minimum: float | None = None
    exclusive_minimum: bool = False
    maximum: float | None = None


_FIELD_RULES: Final[dict[str, dict[str, _FieldRule]]] = {
    "supervisor": {
        "poll_interval_seconds": _FieldRule("float", 0.0, exclusive_minimum=True, maximum=1.0),
        "sample_sleep_seconds": _FieldRule("float", 0.0, maximum=1.0),
        "read_chunk_bytes": _FieldRule("int", 1.0, maximum=1_048_576),
        "timeout_seconds": _FieldRule("float", 0.0),
        "kill_grace_seconds": _FieldRule("float", 0.0),
        "memory_step_kb": _FieldRule("int", 1.0),
        "forward_output": _FieldRule("bool"),
    },
    "checkpoints": {
        "capacity": _FieldRule("int", 1.0),
    },
    "enrichment": {
        "tool_timeout_seconds": _FieldRule("float", 0.0, exclusive_minimum=True),
        "debugger_timeout_seconds": _FieldRule("float", 0.0, exclusive_minimum=True),
    },
    "logging": {
        "level": _FieldRule("str"),
        "file": _FieldRule("str"),
    },
    "report": {
        "mirror_target_exit": _FieldRule("bool"),
        "include_checkpoints": _FieldRule("bool"),
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


class ConfigValidationError(ValueError):
    """Raised when strict settings validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


@dataclass(frozen=True, slots=True)
class AnalyzerSettings:
    """Typed view over a validated settings mapping."""

    poll_interval_seconds: float = POLL_INTERVAL_SECONDS
    sample_sleep_seconds: float = SAMPLE_SLEEP_SECONDS
    read_chunk_bytes: int = READ_CHUNK_BYTES
    timeout_seconds: float | None = None
    kill_grace_seconds: float = KILL_GRACE_SECONDS
    memory_step_kb: int = MEMORY_STEP_KB
    forward_output: bool = True
    checkpoint_capacity: int = CHECKPOINT_CAPACITY
    tool_timeout_seconds: float = TOOL_TIMEOUT_SECONDS
    debugger_timeout_seconds: float = DEBUGGER_TIMEOUT_SECONDS
    log_level: str = ""
    log_file: str = ""
    mirror_target_exit: bool = True
    include_checkpoints: bool = False

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> AnalyzerSettings:
        validated = assert_valid_config(config)
        supervisor = validated["supervisor"]
        timeout = float(supervisor["timeout_seconds"])
        return cls(
            poll_interval_seconds=float(supervisor["poll_interval_seconds"]),
            sample_sleep_seconds=float(supervisor["sample_sleep_seconds"]),
            read_chunk_bytes=int(supervisor["read_chunk_bytes"]),
            timeout_seconds=timeout if timeout > 0 else None,
            kill_grace_seconds=float(supervisor["kill_grace_seconds"]),
            memory_step_kb=int(supervisor["memory_step_kb"]),
            forward_output=bool(supervisor["forward_output"]),
            checkpoint_capacity=int(validated["checkpoints"]["capacity"]),
            tool_timeout_seconds=float(validated["enrichment"]["tool_timeout_seconds"]),
            debugger_timeout_seconds=float(validated["enrichment"]["debugger_timeout_seconds"]),
            log_level=str(validated["logging"]["level"]),
            log_file=str(validated["logging"]["file"]),
            mirror_target_exit=bool(validated["report"]["mirror_target_exit"]),
            include_checkpoints=bool(validated["report"]["include_checkpoints"]),
        )


def default_config() -> dict[str, Any]:
    """Return a fresh deep copy of the default settings mapping."""

    return copy.deepcopy(dict(DEFAULT_SETTINGS))


def field_kinds() -> dict[tuple[str, str], ValueKind]:
    """Return the value kind for every known ``(section, key)`` pair."""

    return {
        (section, key): rule.kind
        for section, rules in _FIELD_RULES.items()
        for key, rule in rules.items()
    }


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged: dict[str, Any] = copy.deepcopy(dict(base))
    _merge_into(merged, overlay)
    return merged


def validate_config(config: Mapping[str, object] | object) -> tuple[ConfigValidationIssue, ...]:
    """Return every validation issue with deterministic dotted paths."""

    issues: list[ConfigValidationIssue] = []
    if not isinstance(config, Mapping):
        return (ConfigValidationIssue("<root>", "config root must be an object"),)

    for section in sorted(str(key) for key in config):
        if section not in _FIELD_RULES:
            issues.append(ConfigValidationIssue(section, "unknown section"))

    for section, rules in _FIELD_RULES.items():
        payload = config.get(section)
        if payload is None:
            issues.append(ConfigValidationIssue(section, "section is required"))
            continue
        if not isinstance(payload, Mapping):
            issues.append(ConfigValidationIssue(section, "section must be an object"))
            continue
        for key in sorted(str(item) for item in payload):
            if key not in rules:
                issues.append(ConfigValidationIssue(f"{section}.{key}", "unknown key"))
        for key, rule in rules.items():
            path = f"{section}.{key}"
            if key not in payload:
                issues.append(ConfigValidationIssue(path, "key is required"))
                continue
            message = _check_value(payload[key], rule)
            if message is not None:
                issues.append(ConfigValidationIssue(path, message))

    logging_section = config.get("logging")
    if isinstance(logging_section, Mapping):
        level = logging_section.get("level")
        if isinstance(level, str) and level.strip().upper() not in _LOG_LEVELS:
            issues.append(
                ConfigValidationIssue(
                    "logging.level", "must be one of DEBUG, INFO, WARNING, ERROR or empty"
                )
            )

    return tuple(issues)


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate settings and raise ``ConfigValidationError`` on failure."""

    issues = validate_config(config)
    if issues:
        raise ConfigValidationError(issues)
    assert isinstance(config, Mapping)
    return merge_config({}, config)


def _check_value(value: object, rule: _FieldRule) -> str | None:
    if rule.kind == "bool":
        return None if isinstance(value, bool) else "must be a boolean"
    if rule.kind == "str":
        return None if isinstance(value, str) else "must be a string"
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return "must be a number" if rule.kind == "float" else "must be an integer"
    if rule.kind == "int" and not isinstance(value, int):
        return "must be an integer"

    number = float(value)
    if rule.minimum is not None:
        if rule.exclusive_minimum and number <= rule.minimum:
            return f"must be > {rule.minimum:g}"
        if not rule.exclusive_minimum and number < rule.minimum:
            return f"must be >= {rule.minimum:g}"
    if rule.maximum is not None and number > rule.maximum:
        return f"must be <= {rule.maximum:g}"
    return None


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            if not isinstance(existing, dict):
                existing = {}
                target[key] = existing
            _merge_into(existing, value)
        else:
            target[key] = copy.deepcopy(value)


__all__ = [
    "DEFAULT_SETTINGS",
    "AnalyzerSettings",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "SettingsConfig",
    "assert_valid_config",
    "default_config",
    "field_kinds",
    "merge_config",
    "validate_config",
]
