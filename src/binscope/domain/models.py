"""Dataclass domain models for a single analysis run: enums, checkpoints and the result record."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum, StrEnum

from binscope.constants import (
    MAX_EXTERNAL_HOSTS,
    MAX_OBSERVED_CONNECTIONS,
    MAX_STACK_FRAMES,
    MAX_VULNERABLE_FUNCTIONS,
)

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

RISK_MIN = 0
RISK_MAX = 5
SCORE_MIN = 1
SCORE_MAX = 10


class Verbosity(IntEnum):
    QUIET = 0
    NORMAL = 1
    VERBOSE = 2
    VERY_VERBOSE = 3


class OutputFormat(StrEnum):
    HUMAN = "human"
    JSON = "json"
    BOTH = "both"


class Feature(StrEnum):
    MEMORY = "memory"
    IO = "io"
    SECURITY = "security"
    PERFORMANCE = "performance"
    NETWORK = "network"
    DEEP = "deep"


class ExecutionMode(StrEnum):
    DIRECT_EXEC = "direct-exec"
    SHELL_MONITOR = "shell-monitor"
    DRY_RUN = "dry-run"
    SAFE_ANALYZE = "safe-analyze"

    @property
    def executes_target(self) -> bool:
        return self in (ExecutionMode.DIRECT_EXEC, ExecutionMode.SHELL_MONITOR)


class CheckpointCategory(StrEnum):
    LOAD = "LOAD"
    FUNC = "FUNC"
    SYSCALL = "SYSCALL"
    MEM = "MEM"
    NET = "NET"
    SEC = "SEC"
    PERF = "PERF"
    EXIT = "EXIT"
    MISC = "MISC"

    @classmethod
    def coerce(cls, value: CheckpointCategory | str | None) -> CheckpointCategory:
        """Return the matching category, falling back to ``MISC`` for unknown labels."""

        if isinstance(value, CheckpointCategory):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().upper())
            except ValueError:
                return cls.MISC
        return cls.MISC


class ToolClass(StrEnum):
    COMPILER = "compiler"
    TEXT_PROCESSOR = "text_processor"
    FILE_UTILITY = "file_utility"
    DATA_PROCESSOR = "data_processor"
    ARCHIVER = "archiver"
    INTERPRETER = "interpreter"
    REPORTING_TOOL = "reporting_tool"
    HEAVY_PROCESSOR = "heavy_processor"
    SYSTEM_UTILITY = "system_utility"
    UNKNOWN = "unknown"


class ExitTag(StrEnum):
    SUCCESS = "success"
    GENERIC_ERROR = "generic-error"
    INVALID_EXIT = "invalid-exit"
    NOT_EXECUTABLE = "not-executable"
    NOT_FOUND = "not-found"
    INTERRUPTED = "interrupted"
    CODE_CORRUPTION = "code-corruption"
    DEBUG_TRAP = "debug-trap"
    HEAP_CORRUPTION = "heap-corruption"
    MEMORY_ALIGNMENT = "memory-alignment"
    ARITHMETIC_OVERFLOW = "arithmetic-overflow"
    RESOURCE_EXHAUSTION = "resource-exhaustion"
    MEMORY_CORRUPTION = "memory-corruption"
    SIGNAL_OTHER = "signal-other"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class Checkpoint:
    """One timeline entry. Immutable once stored."""

    index: int
    id: str
    category: CheckpointCategory
    context: str
    offset_seconds: float
    wallclock: str
    trigger_fired: bool = False

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {
            "id": self.id,
            "timestamp": self.wallclock,
            "category": self.category.value,
            "time_offset": round(self.offset_seconds, 6),
            "trigger_fired": self.trigger_fired,
        }
        if self.context:
            payload["context"] = self.context
        return payload


@dataclass(slots=True)
class ExecutionStats:
    exit_code: int = 0
    exit_tag: ExitTag = ExitTag.UNKNOWN
    exit_description: str = ""
    execution_time: float = 0.0
    startup_time: float = 0.0
    processing_time: float = 0.0
    cleanup_time: float = 0.0
    child_pid: int | None = None
    signal_number: int | None = None
    timed_out: bool = False
    interrupted: bool = False
    ran: bool = False

    @property
    def success(self) -> bool:
        return self.ran and self.exit_code == 0 and not self.timed_out


@dataclass(slots=True)
class MemoryStats:
    peak_rss_kb: int = 0
    samples: int = 0

    def observe(self, rss_kb: int) -> bool:
        """Record a sample; return ``True`` when it raised the peak."""

        self.samples += 1
        if rss_kb > self.peak_rss_kb:
            self.peak_rss_kb = rss_kb
            return True
        return False


@dataclass(slots=True)
class IoStats:
    stdout_bytes: int = 0
    stderr_bytes: int = 0
    verbose_msgs: int = 0
    error_msgs: int = 0
    warning_msgs: int = 0


@dataclass(slots=True)
class Classification:
    tool_class: ToolClass = ToolClass.UNKNOWN
    behavior_pattern: str = ""
    performance_category: str = ""
    output_complexity: int = 0
    resource_efficiency: int = 0
    structured_output: bool = False
    verbose_operation_type: str = "unknown"
    verbose_intelligence_score: int = 0


@dataclass(slots=True)
class CrashLocation:
    function: str = ""
    line: int = 0
    source_file: str = ""

    @property
    def known(self) -> bool:
        return bool(self.function or self.source_file)


@dataclass(slots=True)
class SecurityFindings:
    buffer_overflow_risk: int = 0
    use_after_free_risk: int = 0
    format_string_risk: int = 0
    null_pointer_risk: int = 0
    integer_overflow_risk: int = 0
    uninitialized_memory_risk: int = 0
    memory_leak_risk: int = 0
    dangerous_function_count: int = 0
    overall_security_score: int = 5
    classification: str = ""
    vulnerable_functions: list[str] = field(default_factory=list)
    has_debug_symbols: bool = False
    crash_location: CrashLocation = field(default_factory=CrashLocation)
    stack_trace: list[str] = field(default_factory=list)
    vulnerability_details: str = ""

    def add_vulnerable_function(self, name: str) -> bool:
        if name in self.vulnerable_functions:
            return False
        if len(self.vulnerable_functions) >= MAX_VULNERABLE_FUNCTIONS:
            return False
        self.vulnerable_functions.append(name)
        return True

    def add_stack_frame(self, frame: str) -> bool:
        if len(self.stack_trace) >= MAX_STACK_FRAMES:
            return False
        self.stack_trace.append(frame)
        return True

    def clamp(self) -> None:
        """Force every risk into 0..5 and the overall score into 1..10."""

        self.buffer_overflow_risk = _clamp(self.buffer_overflow_risk, RISK_MIN, RISK_MAX)
        self.use_after_free_risk = _clamp(self.use_after_free_risk, RISK_MIN, RISK_MAX)
        self.format_string_risk = _clamp(self.format_string_risk, RISK_MIN, RISK_MAX)
        self.null_pointer_risk = _clamp(self.null_pointer_risk, RISK_MIN, RISK_MAX)
        self.integer_overflow_risk = _clamp(self.integer_overflow_risk, RISK_MIN, RISK_MAX)
        self.uninitialized_memory_risk = _clamp(
            self.uninitialized_memory_risk, RISK_MIN, RISK_MAX
        )
        self.memory_leak_risk = _clamp(self.memory_leak_risk, RISK_MIN, RISK_MAX)
        self.overall_security_score = _clamp(self.overall_security_score, SCORE_MIN, SCORE_MAX)

    def risk_indicators(self) -> dict[str, int]:
        return {
            "buffer_overflow_risk": self.buffer_overflow_risk,
            "use_after_free_risk": self.use_after_free_risk,
            "format_string_risk": self.format_string_risk,
            "null_pointer_risk": self.null_pointer_risk,
            "integer_overflow_risk": self.integer_overflow_risk,
            "uninitialized_memory_risk": self.uninitialized_memory_risk,
            "memory_leak_risk": self.memory_leak_risk,
        }


@dataclass(slots=True)
class LanguageProfile:
    detected_language: str = "Unknown"
    runtime_version: str = ""
    dependency_manager: str = ""
    managed_memory: bool = False
    unsafe_code: bool = False
    language_specific_info: str = ""
    frameworks: list[str] = field(default_factory=list)

    def add_framework(self, name: str) -> bool:
        if name in self.frameworks:
            return False
        self.frameworks.append(name)
        return True


@dataclass(slots=True)
class NetworkProfile:
    connections_detected: int = 0
    http_requests: int = 0
    dns_queries: int = 0
    external_hosts: list[str] = field(default_factory=list)
    repository_urls: list[str] = field(default_factory=list)
    observed_connections: list[str] = field(default_factory=list)
    package_downloads: bool = False
    data_upload: bool = False
    network_score: int = 10
    suspicious: bool = False
    summary: str = "No network activity detected"

    def add_host(self, host: str) -> bool:
        if not host or host in self.external_hosts:
            return False
        if len(self.external_hosts) >= MAX_EXTERNAL_HOSTS:
            return False
        self.external_hosts.append(host)
        return True

    def add_repository(self, name: str) -> bool:
        if name in self.repository_urls:
            return False
        self.repository_urls.append(name)
        return True

    def add_observed_connection(self, remote: str) -> bool:
        if remote in self.observed_connections:
            return False
        if len(self.observed_connections) >= MAX_OBSERVED_CONNECTIONS:
            return False
        self.observed_connections.append(remote)
        return True


@dataclass(slots=True)
class AnalysisResult:
    """Single mutable accumulator owned by one run."""

    target_path: str
    target_argv: tuple[str, ...] = ()
    execution: ExecutionStats = field(default_factory=ExecutionStats)
    memory: MemoryStats = field(default_factory=MemoryStats)
    io: IoStats = field(default_factory=IoStats)
    classification: Classification = field(default_factory=Classification)
    security: SecurityFindings = field(default_factory=SecurityFindings)
    language: LanguageProfile = field(default_factory=LanguageProfile)
    network: NetworkProfile = field(default_factory=NetworkProfile)
    completed_passes: list[str] = field(default_factory=list)
    unavailable_passes: list[str] = field(default_factory=list)
    trigger_hits: dict[str, int] = field(default_factory=dict)

    def record_trigger_hit(self, name: str) -> None:
        self.trigger_hits[name] = self.trigger_hits.get(name, 0) + 1

    def pass_completed(self, name: str) -> bool:
        return name in self.completed_passes


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


__all__ = [
    "RISK_MAX",
    "RISK_MIN",
    "SCORE_MAX",
    "SCORE_MIN",
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
    "JSONScalar",
    "JSONValue",
    "LanguageProfile",
    "MemoryStats",
    "NetworkProfile",
    "OutputFormat",
    "SecurityFindings",
    "ToolClass",
    "Verbosity",
]
