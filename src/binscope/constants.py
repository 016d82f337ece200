"""Stable constants shared across analyzer planes."""

from __future__ import annotations

from typing import Final

VERSION: Final[str] = "0.3.0"

# Default settings file looked up in the working directory.
DEFAULT_CONFIG_FILE: Final[str] = "binscope.toml"
ENV_PREFIX: Final[str] = "BINSCOPE_"

# Checkpoint log bounds.
CHECKPOINT_CAPACITY: Final[int] = 1024
CHECKPOINT_ID_MAX: Final[int] = 64
CHECKPOINT_CONTEXT_MAX: Final[int] = 128
TRIGGER_CAPACITY: Final[int] = 64

# Supervisor loop defaults.
POLL_INTERVAL_SECONDS: Final[float] = 0.01
SAMPLE_SLEEP_SECONDS: Final[float] = 0.001
READ_CHUNK_BYTES: Final[int] = 4096
KILL_GRACE_SECONDS: Final[float] = 2.0
MEMORY_STEP_KB: Final[int] = 1024

# Argument and path limits enforced before anything is executed.
MAX_ARGUMENT_LENGTH: Final[int] = 4096
SHELL_METACHARACTERS: Final[frozenset[str]] = frozenset({";", "|", "&"})

# Result bounds.
MAX_VULNERABLE_FUNCTIONS: Final[int] = 10
MAX_STACK_FRAMES: Final[int] = 5
MAX_EXTERNAL_HOSTS: Final[int] = 10
MAX_OBSERVED_CONNECTIONS: Final[int] = 10

# External helper timeouts.
TOOL_TIMEOUT_SECONDS: Final[float] = 10.0
DEBUGGER_TIMEOUT_SECONDS: Final[float] = 10.0

__all__ = [
    "CHECKPOINT_CAPACITY",
    "CHECKPOINT_CONTEXT_MAX",
    "CHECKPOINT_ID_MAX",
    "DEBUGGER_TIMEOUT_SECONDS",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "KILL_GRACE_SECONDS",
    "MAX_ARGUMENT_LENGTH",
    "MAX_EXTERNAL_HOSTS",
    "MAX_OBSERVED_CONNECTIONS",
    "MAX_STACK_FRAMES",
    "MAX_VULNERABLE_FUNCTIONS",
    "MEMORY_STEP_KB",
    "POLL_INTERVAL_SECONDS",
    "READ_CHUNK_BYTES",
    "SAMPLE_SLEEP_SECONDS",
    "SHELL_METACHARACTERS",
    "TOOL_TIMEOUT_SECONDS",
    "TRIGGER_CAPACITY",
    "VERSION",
]
