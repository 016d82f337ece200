"""Queue-backed logging for the analyzer: stderr console sink plus optional JSON-lines file.

Components log through ``structlog`` bound loggers; structlog renders into stdlib
``logging`` keyword arguments so every record flows through the same queue, the same
correlation context and the same sinks. Nothing here writes to stdout, which carries
reports and the forwarded child output.
"""

from __future__ import annotations

import atexit
import contextvars
import json
import logging
import logging.handlers
import math
import queue
import sys
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import TextIO, cast

import structlog

from binscope.domain.models import JSONValue, Verbosity

_DEFAULT_LOGGER_NAME = "binscope"
_DEFAULT_QUEUE_SIZE = 4096

_VERBOSITY_LEVELS: dict[Verbosity, int] = {
    Verbosity.QUIET: logging.ERROR,
    Verbosity.NORMAL: logging.WARNING,
    Verbosity.VERBOSE: logging.INFO,
    Verbosity.VERY_VERBOSE: logging.DEBUG,
}

_CORRELATION_KEYS: tuple[str, ...] = ("run_id", "target", "mode", "child_pid")

# attributes every LogRecord carries; anything else arrived through ``extra``
_RECORD_ATTRIBUTES: frozenset[str] = frozenset(
    vars(logging.LogRecord("", logging.NOTSET, "", 0, "", None, None))
) | {"message", "asctime", "correlation"}

_CORRELATION_CONTEXT: contextvars.ContextVar[tuple[tuple[str, str], ...]] = contextvars.ContextVar(
    "binscope_log_correlation", default=()
)

_active_lock = threading.Lock()
_active: LoggingHandle | None = None
_atexit_registered = False


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Configuration for queue-backed analyzer logging."""

    level: int | str = logging.WARNING
    logger_name: str = _DEFAULT_LOGGER_NAME
    log_file: Path | str | None = None
    console: bool = True
    console_stream: TextIO | None = None
    queue_size: int = _DEFAULT_QUEUE_SIZE


def level_for_verbosity(verbosity: Verbosity, override: str | int | None = None) -> int:
    """Map CLI verbosity to a logging level; a non-empty override wins."""

    if isinstance(override, int) and not isinstance(override, bool):
        return override
    if isinstance(override, str) and override.strip():
        return _parse_log_level(override)
    return _VERBOSITY_LEVELS[verbosity]


def configure_structlog() -> None:
    """Route structlog bound loggers into stdlib logging records."""

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.format_exc_info,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


class BoundedQueueHandler(logging.handlers.QueueHandler):
    """Stamps the correlation context on each record; drops records once the queue is full."""

    def __init__(self, log_queue: queue.Queue[object]) -> None:
        super().__init__(log_queue)
        self.dropped = 0

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        correlation = get_correlation_context()
        if correlation:
            record.correlation = correlation
        return cast("logging.LogRecord", super().prepare(record))

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            with self.lock:
                self.dropped += 1


class _ConsoleFormatter(logging.Formatter):
    """One-line ``binscope: level: message key=value`` rendering for stderr."""

    def format(self, record: logging.LogRecord) -> str:
        line = f"binscope: {record.levelname.lower()}: {record.getMessage()}"
        fields = _record_fields(record)
        if fields:
            line += " " + " ".join(f"{key}={_console_value(fields[key])}" for key in sorted(fields))
        if record.exc_info is not None:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class _JsonLineFormatter(logging.Formatter):
    """One JSON object per record: header, flattened correlation keys, then ``fields``."""

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created, tz=UTC)
        event: dict[str, JSONValue] = {
            "timestamp": stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        correlation = getattr(record, "correlation", None)
        if isinstance(correlation, Mapping):
            event.update({str(key): str(value) for key, value in correlation.items()})
        fields = _record_fields(record)
        if fields:
            event["fields"] = fields
        if record.exc_info is not None:
            event["exception"] = self.formatException(record.exc_info)
        return json.dumps(event, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class LoggingHandle:
    """One active logging setup: the queue handler, its listener and the sinks it feeds."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        log_path: Path | None,
        queue_handler: BoundedQueueHandler,
        listener: logging.handlers.QueueListener,
        sinks: tuple[logging.Handler, ...],
    ) -> None:
        self.logger = logger
        self.log_path = log_path
        self._queue_handler = queue_handler
        self._listener = listener
        self._sinks = sinks
        self._closed = False
        self._lock = threading.Lock()

    def shutdown(self) -> None:
        """Drain the queue into the sinks and close them; later calls do nothing."""

        with self._lock:
            if self._closed:
                return
            self._closed = True
            self.logger.removeHandler(self._queue_handler)
            self._listener.stop()
            if self._queue_handler.dropped:
                notice = self.logger.makeRecord(
                    self.logger.name,
                    logging.WARNING,
                    __file__,
                    0,
                    "diagnostic queue overflowed; %d records dropped",
                    (self._queue_handler.dropped,),
                    None,
                )
                for sink in self._sinks:
                    sink.handle(notice)
            self._queue_handler.close()
            for sink in self._sinks:
                sink.flush()
                sink.close()


def setup_logging(config: LoggingConfig | None = None) -> LoggingHandle:
    """Configure queue-backed logging for one analyzer invocation (replacing any earlier one)."""

    cfg = config if config is not None else LoggingConfig()
    shutdown_logging()

    level = _parse_log_level(cfg.level)
    if isinstance(cfg.queue_size, bool) or not isinstance(cfg.queue_size, int) or cfg.queue_size <= 0:
        raise ValueError("queue_size must be a positive integer")
    logger_name = cfg.logger_name.strip()
    if not logger_name:
        raise ValueError("logger_name must not be empty")

    sinks: list[logging.Handler] = []
    if cfg.console:
        console = logging.StreamHandler(cfg.console_stream if cfg.console_stream is not None else sys.stderr)
        console.setLevel(level)
        console.setFormatter(_ConsoleFormatter())
        sinks.append(console)

    log_path: Path | None = None
    if cfg.log_file is not None and str(cfg.log_file).strip():
        log_path = Path(cfg.log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        # the file keeps debug detail whatever the console level
        diagnostics = logging.FileHandler(log_path, encoding="utf-8")
        diagnostics.setLevel(logging.DEBUG)
        diagnostics.setFormatter(_JsonLineFormatter())
        sinks.append(diagnostics)

    logger = logging.getLogger(logger_name)
    logger.setLevel(logging.DEBUG if log_path is not None else level)
    logger.propagate = False
    for stale in list(logger.handlers):
        logger.removeHandler(stale)
        stale.close()

    queue_handler = BoundedQueueHandler(queue.Queue(maxsize=cfg.queue_size))
    listener = logging.handlers.QueueListener(
        queue_handler.queue, *sinks, respect_handler_level=True
    )
    listener.start()
    logger.addHandler(queue_handler)
    configure_structlog()

    handle = LoggingHandle(
        logger=logger,
        log_path=log_path,
        queue_handler=queue_handler,
        listener=listener,
        sinks=tuple(sinks),
    )
    global _active, _atexit_registered
    with _active_lock:
        _active = handle
        if not _atexit_registered:
            atexit.register(shutdown_logging)
            _atexit_registered = True
    return handle


def shutdown_logging(handle: LoggingHandle | None = None) -> None:
    """Flush and close the given (or the active) logging setup. Idempotent."""

    global _active
    with _active_lock:
        target = handle if handle is not None else _active
        if target is _active:
            _active = None
    if target is not None:
        target.shutdown()


def get_correlation_context() -> dict[str, str]:
    """Return the current correlation context as a plain dictionary."""

    return dict(_CORRELATION_CONTEXT.get())


@contextmanager
def correlation_scope(**fields: str | int | None) -> Iterator[None]:
    """Bind correlation fields (``None`` unbinds) for log records emitted in scope."""

    state = get_correlation_context()
    for key, value in fields.items():
        if key not in _CORRELATION_KEYS:
            raise ValueError(f"unsupported correlation key {key!r}")
        text = "" if value is None else str(value).strip()
        if text:
            state[key] = text
        else:
            state.pop(key, None)
    token = _CORRELATION_CONTEXT.set(tuple(state.items()))
    try:
        yield
    finally:
        _CORRELATION_CONTEXT.reset(token)


def _parse_log_level(value: int | str) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        parsed = logging.getLevelName(value.strip().upper())
        if isinstance(parsed, int):
            return parsed
    raise ValueError(f"unsupported logging level {value!r}")


def _record_fields(record: logging.LogRecord) -> dict[str, JSONValue]:
    return {
        key: _jsonable(value)
        for key, value in vars(record).items()
        if key not in _RECORD_ATTRIBUTES and not key.startswith("_")
    }


def _console_value(value: JSONValue) -> str:
    if isinstance(value, str) and value and " " not in value:
        return value
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _jsonable(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else str(value)
    if isinstance(value, Mapping):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


__all__ = [
    "BoundedQueueHandler",
    "LoggingConfig",
    "LoggingHandle",
    "configure_structlog",
    "correlation_scope",
    "get_correlation_context",
    "level_for_verbosity",
    "setup_logging",
    "shutdown_logging",
]
