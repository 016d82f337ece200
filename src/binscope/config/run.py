"""Immutable run parameters and the builder that validates them before anything runs."""

from __future__ import annotations

import shlex
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

import structlog

from binscope.config.schema import AnalyzerSettings
from binscope.constants import MAX_ARGUMENT_LENGTH, SHELL_METACHARACTERS
from binscope.domain.models import ExecutionMode, Feature, OutputFormat, Verbosity

BASELINE_FEATURES: frozenset[Feature] = frozenset({Feature.MEMORY, Feature.IO})
VERY_VERBOSE_FEATURES: frozenset[Feature] = frozenset(
    {Feature.DEEP, Feature.PERFORMANCE, Feature.SECURITY, Feature.NETWORK}
)
_DEEP_IMPLYING: frozenset[Feature] = frozenset(
    {Feature.PERFORMANCE, Feature.SECURITY, Feature.NETWORK}
)


class ConfigError(ValueError):
    """Invalid, conflicting, or unsafe run configuration. Raised before any fork."""


@dataclass(frozen=True, slots=True)
class RunConfig:
    """Validated run parameters. Execution-capable modes always carry ``force_execution``."""

    target_path: str
    target_argv: tuple[str, ...] = ()
    verbosity: Verbosity = Verbosity.NORMAL
    output_format: OutputFormat = OutputFormat.HUMAN
    features: frozenset[Feature] = BASELINE_FEATURES
    mode: ExecutionMode = ExecutionMode.DIRECT_EXEC
    force_execution: bool = False
    settings: AnalyzerSettings = field(default_factory=AnalyzerSettings)
    simulated_mode: ExecutionMode | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.target_path, str) or not self.target_path.strip():
            raise ConfigError("target path must not be empty")
        if self.mode.executes_target and not self.force_execution:
            raise ConfigError(safety_block_message(self.mode, self.target_path))
        if self.simulated_mode is not None and (
            self.mode is not ExecutionMode.DRY_RUN or not self.simulated_mode.executes_target
        ):
            raise ConfigError("simulated_mode is only valid for dry-run of an executing mode")

    def has(self, feature: Feature) -> bool:
        return feature in self.features

    @property
    def deep_analysis(self) -> bool:
        return Feature.DEEP in self.features

    @property
    def executes_target(self) -> bool:
        return self.mode.executes_target

    @property
    def command_line(self) -> str:
        """Human-readable rendering of what would be (or was) executed."""

        if ExecutionMode.SHELL_MONITOR in (self.mode, self.simulated_mode):
            return self.target_path
        return shlex.join((self.target_path, *self.target_argv))


class RunConfigBuilder:
    """Accumulate CLI choices, then ``build()`` a validated :class:`RunConfig`."""

    def __init__(self) -> None:
        self._target: str | None = None
        self._argv: list[str] = []
        self._monitor_command: str | None = None
        self._safe_analyze_path: str | None = None
        self._dry_run = False
        self._force = False
        self._verbosity = Verbosity.NORMAL
        self._output_format = OutputFormat.HUMAN
        self._features: set[Feature] = set()
        self._settings = AnalyzerSettings()
        self._logger = structlog.get_logger(__name__)

    def target(self, path: str | None, argv: Sequence[str] = ()) -> RunConfigBuilder:
        self._target = path
        self._argv = list(argv)
        return self

    def monitor(self, command: str | None) -> RunConfigBuilder:
        self._monitor_command = command
        return self

    def safe_analyze(self, path: str | None) -> RunConfigBuilder:
        self._safe_analyze_path = path
        return self

    def dry_run(self, enabled: bool = True) -> RunConfigBuilder:
        self._dry_run = enabled
        return self

    def force(self, enabled: bool = True) -> RunConfigBuilder:
        self._force = enabled
        return self

    def verbosity(self, verbosity: Verbosity) -> RunConfigBuilder:
        self._verbosity = verbosity
        return self

    def output_format(self, output_format: OutputFormat) -> RunConfigBuilder:
        self._output_format = output_format
        return self

    def features(self, features: Iterable[Feature]) -> RunConfigBuilder:
        self._features.update(features)
        return self

    def all_features(self) -> RunConfigBuilder:
        self._features.update(Feature)
        return self

    def settings(self, settings: AnalyzerSettings) -> RunConfigBuilder:
        self._settings = settings
        return self

    def build(self) -> RunConfig:
        mode, target_path, argv = self._resolve_mode()
        simulated_mode = None
        if mode is ExecutionMode.DRY_RUN:
            simulated_mode = (
                ExecutionMode.SHELL_MONITOR
                if _blank_to_none(self._monitor_command) is not None
                else ExecutionMode.DIRECT_EXEC
            )
        self._sanitize_arguments(argv, mode)

        return RunConfig(
            target_path=target_path,
            target_argv=tuple(argv),
            verbosity=self._verbosity,
            output_format=self._output_format,
            features=self._resolve_features(),
            mode=mode,
            force_execution=self._force,
            settings=self._settings,
            simulated_mode=simulated_mode,
        )

    def _resolve_mode(self) -> tuple[ExecutionMode, str, list[str]]:
        target = _blank_to_none(self._target)
        monitor = _blank_to_none(self._monitor_command)
        safe_path = _blank_to_none(self._safe_analyze_path)

        if monitor is not None and safe_path is not None:
            raise ConfigError("conflicting modes: --monitor and --safe-analyze")
        if safe_path is not None:
            if target is not None:
                raise ConfigError("conflicting modes: --safe-analyze takes no positional target")
            if self._dry_run:
                raise ConfigError("conflicting modes: --safe-analyze and --dry-run")
            return ExecutionMode.SAFE_ANALYZE, safe_path, []
        if monitor is not None:
            if target is not None:
                raise ConfigError("conflicting modes: --monitor takes no positional target")
            if len(monitor) > MAX_ARGUMENT_LENGTH:
                raise ConfigError(
                    f"monitor command exceeds {MAX_ARGUMENT_LENGTH} characters"
                )
            if self._dry_run:
                return ExecutionMode.DRY_RUN, monitor, []
            if not self._force:
                raise ConfigError(safety_block_message(ExecutionMode.SHELL_MONITOR, monitor))
            return ExecutionMode.SHELL_MONITOR, monitor, []
        if target is None:
            raise ConfigError("no target executable specified")
        if self._dry_run:
            return ExecutionMode.DRY_RUN, target, list(self._argv)
        if not self._force:
            raise ConfigError(safety_block_message(ExecutionMode.DIRECT_EXEC, target))
        return ExecutionMode.DIRECT_EXEC, target, list(self._argv)

    def _resolve_features(self) -> frozenset[Feature]:
        features = set(self._features) | BASELINE_FEATURES
        if self._verbosity is Verbosity.VERY_VERBOSE:
            features |= VERY_VERBOSE_FEATURES
        if features & _DEEP_IMPLYING:
            features.add(Feature.DEEP)
        return frozenset(features)

    def _sanitize_arguments(self, argv: Sequence[str], mode: ExecutionMode) -> None:
        for index, argument in enumerate(argv):
            if len(argument) > MAX_ARGUMENT_LENGTH:
                raise ConfigError(
                    f"argument {index} exceeds {MAX_ARGUMENT_LENGTH} characters"
                )
            if any(char in argument for char in SHELL_METACHARACTERS):
                self._logger.warning(
                    "argument contains shell metacharacters",
                    argument_index=index,
                    mode=mode.value,
                )


def safety_block_message(mode: ExecutionMode, target: str) -> str:
    """Diagnostic for execution-capable modes selected without ``-f``."""

    if mode is ExecutionMode.SHELL_MONITOR:
        action = f"monitor shell command {target!r}"
        dry_run = f"binscope --dry-run --monitor {shlex.quote(target)}"
        rerun = f"binscope -f --monitor {shlex.quote(target)}"
    else:
        action = f"execute {target!r}"
        dry_run = f"binscope --dry-run {shlex.quote(target)}"
        rerun = f"binscope -f {shlex.quote(target)}"
    return (
        f"EXECUTION SAFETY BLOCK: refusing to {action} without -f/--force.\n"
        "Safe alternatives:\n"
        f"  {dry_run}    (simulate without executing)\n"
        f"  binscope --safe-analyze {shlex.quote(target)}    (static inspection only)\n"
        f"  {rerun}    (explicitly allow execution)"
    )


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    return value if value.strip() else None


__all__ = [
    "BASELINE_FEATURES",
    "VERY_VERBOSE_FEATURES",
    "ConfigError",
    "RunConfig",
    "RunConfigBuilder",
    "safety_block_message",
]
