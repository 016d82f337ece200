"""
binscope — unit tests for the settings loader

File: tests/unit/config/test_loader.py
Last updated: 2026-10-17

Purpose
- Validate deterministic settings loading from defaults, TOML, env overrides, and CLI overrides.

What this test file should cover
- Precedence: CLI > env > file > defaults.
- Deterministic env var naming and type coercion.
- Missing/invalid files and the typed settings record.

Functional requirements
- Works offline against temporary files only.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from binscope.config.loader import ConfigLoadError, env_name_for, load_config, load_settings
from binscope.config.schema import ConfigValidationError


def _write_config(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def test_loader_precedence_default_file_env_cli(tmp_path: Path) -> None:
    config_path = tmp_path / "binscope.toml"
    default_path = tmp_path / "empty.toml"
    _write_config(default_path, "")
    _write_config(
        config_path,
        """
[supervisor]
timeout_seconds = 4.0
""".strip(),
    )

    default_loaded = load_config(default_path, environ={})
    file_loaded = load_config(config_path, environ={})
    env_loaded = load_config(config_path, environ={"BINSCOPE_SUPERVISOR_TIMEOUT_SECONDS": "6"})
    cli_loaded = load_config(
        config_path,
        environ={"BINSCOPE_SUPERVISOR_TIMEOUT_SECONDS": "6"},
        cli_overrides={"supervisor.timeout_seconds": 7.5},
    )

    assert default_loaded["supervisor"]["timeout_seconds"] == 0.0
    assert file_loaded["supervisor"]["timeout_seconds"] == 4.0
    assert env_loaded["supervisor"]["timeout_seconds"] == 6.0
    assert cli_loaded["supervisor"]["timeout_seconds"] == 7.5


def test_none_cli_overrides_are_ignored(tmp_path: Path) -> None:
    loaded = load_config(
        search_dir=tmp_path,
        environ={},
        cli_overrides={"supervisor.timeout_seconds": None, "logging.file": None},
    )

    assert loaded["supervisor"]["timeout_seconds"] == 0.0
    assert loaded["logging"]["file"] == ""


def test_default_file_is_discovered_in_search_dir(tmp_path: Path) -> None:
    _write_config(tmp_path / "binscope.toml", "[report]\ninclude_checkpoints = true\n")

    settings = load_settings(search_dir=tmp_path, environ={})

    assert settings.include_checkpoints is True


def test_missing_default_file_falls_back_to_defaults(tmp_path: Path) -> None:
    settings = load_settings(search_dir=tmp_path, environ={})

    assert settings.timeout_seconds is None
    assert settings.checkpoint_capacity == 1024
    assert settings.mirror_target_exit is True


def test_explicit_missing_file_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="config file not found"):
        load_config(tmp_path / "absent.toml", environ={})


def test_invalid_toml_is_reported(tmp_path: Path) -> None:
    config_path = tmp_path / "broken.toml"
    _write_config(config_path, "[supervisor\ntimeout_seconds = ")

    with pytest.raises(ConfigLoadError, match="invalid TOML"):
        load_config(config_path, environ={})


@pytest.mark.parametrize(
    ("env_name", "raw", "section", "key", "expected"),
    [
        ("BINSCOPE_CHECKPOINTS_CAPACITY", "64", "checkpoints", "capacity", 64),
        ("BINSCOPE_SUPERVISOR_FORWARD_OUTPUT", "off", "supervisor", "forward_output", False),
        ("BINSCOPE_REPORT_INCLUDE_CHECKPOINTS", "Yes", "report", "include_checkpoints", True),
        ("BINSCOPE_LOGGING_LEVEL", " info ", "logging", "level", "info"),
    ],
)
def test_env_values_are_coerced(
    tmp_path: Path,
    env_name: str,
    raw: str,
    section: str,
    key: str,
    expected: object,
) -> None:
    loaded = load_config(search_dir=tmp_path, environ={env_name: raw})

    assert loaded[section][key] == expected


@pytest.mark.parametrize(
    ("env_name", "raw", "message"),
    [
        ("BINSCOPE_CHECKPOINTS_CAPACITY", "lots", "must be an integer"),
        ("BINSCOPE_SUPERVISOR_TIMEOUT_SECONDS", "soon", "must be a number"),
        ("BINSCOPE_REPORT_MIRROR_TARGET_EXIT", "maybe", "must be a boolean"),
    ],
)
def test_uncoercible_env_values_fail(tmp_path: Path, env_name: str, raw: str, message: str) -> None:
    with pytest.raises(ConfigLoadError, match=message):
        load_config(search_dir=tmp_path, environ={env_name: raw})


def test_out_of_range_values_fail_validation(tmp_path: Path) -> None:
    config_path = tmp_path / "binscope.toml"
    _write_config(config_path, "[checkpoints]\ncapacity = 0\n")

    with pytest.raises(ConfigValidationError) as excinfo:
        load_config(config_path, environ={})

    assert [issue.path for issue in excinfo.value.issues] == ["checkpoints.capacity"]


def test_malformed_cli_override_key_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="expected 'section.key'"):
        load_config(search_dir=tmp_path, environ={}, cli_overrides={"timeout": 3})


def test_env_name_mapping_is_deterministic() -> None:
    assert env_name_for("supervisor", "timeout_seconds") == "BINSCOPE_SUPERVISOR_TIMEOUT_SECONDS"


def test_repeated_loads_are_identical(tmp_path: Path) -> None:
    _write_config(tmp_path / "binscope.toml", "[enrichment]\ntool_timeout_seconds = 3.0\n")

    first = load_settings(search_dir=tmp_path, environ={})
    second = load_settings(search_dir=tmp_path, environ={})

    assert first == second
    assert first.tool_timeout_seconds == 3.0
