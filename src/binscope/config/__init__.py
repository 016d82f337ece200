"""Configuration: run-config builder, settings schema, and TOML/env settings loader."""

from binscope.config.loader import ConfigLoadError, env_name_for, load_config, load_settings
from binscope.config.run import (
    BASELINE_FEATURES,
    VERY_VERBOSE_FEATURES,
    ConfigError,
    RunConfig,
    RunConfigBuilder,
    safety_block_message,
)
from binscope.config.schema import (
    DEFAULT_SETTINGS,
    AnalyzerSettings,
    ConfigValidationError,
    ConfigValidationIssue,
    assert_valid_config,
    default_config,
    merge_config,
    validate_config,
)

__all__ = [
    "BASELINE_FEATURES",
    "DEFAULT_SETTINGS",
    "VERY_VERBOSE_FEATURES",
    "AnalyzerSettings",
    "ConfigError",
    "ConfigLoadError",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "RunConfig",
    "RunConfigBuilder",
    "assert_valid_config",
    "default_config",
    "env_name_for",
    "load_config",
    "load_settings",
    "merge_config",
    "safety_block_message",
    "validate_config",
]
