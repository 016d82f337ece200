"""Public observability primitives: clock, checkpoint timeline, triggers, and logging."""

from binscope.observability.checkpoints import (
    CLEANUP_ID,
    INIT_ID,
    OVERFLOW_ID,
    TRIGGER_ERROR_ID,
    CheckpointLog,
)
from binscope.observability.clock import Clock, SystemClock, format_wallclock
from binscope.observability.logging import (
    LoggingConfig,
    LoggingHandle,
    correlation_scope,
    get_correlation_context,
    level_for_verbosity,
    setup_logging,
    shutdown_logging,
)
from binscope.observability.triggers import (
    DuplicateTriggerError,
    Trigger,
    TriggerCallback,
    TriggerDispatch,
    TriggerFault,
    TriggerRegistry,
    pattern_matches,
)

__all__ = [
    "CLEANUP_ID",
    "INIT_ID",
    "OVERFLOW_ID",
    "TRIGGER_ERROR_ID",
    "CheckpointLog",
    "Clock",
    "DuplicateTriggerError",
    "LoggingConfig",
    "LoggingHandle",
    "SystemClock",
    "Trigger",
    "TriggerCallback",
    "TriggerDispatch",
    "TriggerFault",
    "TriggerRegistry",
    "correlation_scope",
    "format_wallclock",
    "get_correlation_context",
    "level_for_verbosity",
    "pattern_matches",
    "setup_logging",
    "shutdown_logging",
]
