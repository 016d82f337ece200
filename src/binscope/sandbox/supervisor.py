"""
binscope — child supervisor.

File: src/binscope/sandbox/supervisor.py
Last updated: 2026-10-17

Purpose
- Launch the target (direct exec or ``/bin/sh -c``) with both output pipes captured.
- Drive the select loop: reap, sample RSS, read, forward, scan.
- Enforce the optional wall-clock ceiling and forward SIGINT once.

What should be included in this file
- ``ChildSupervisor.run`` and the ``SupervisorOutcome`` record.
- ``IoSetupError`` for launch failures that are not exec failures.

Functional requirements
- Never entered for dry-run or safe-analyze, and never without ``force_execution``.
- Both pipes are closed and the child is reaped on every exit path.
- The previous SIGINT handler is restored on every exit path.
"""

from __future__ import annotations

import errno
import os
import select
import signal
import subprocess
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import IO, Any, BinaryIO, Final

import structlog

from binscope.config.run import ConfigError, RunConfig
from binscope.config.schema import AnalyzerSettings
from binscope.domain.models import (
    AnalysisResult,
    CheckpointCategory,
    ExecutionMode,
    Feature,
    ToolClass,
)
from binscope.enrichment.classification import split_execution_time
from binscope.enrichment.exit_codes import (
    ExitDecoding,
    decode_exit,
    exit_code_from_returncode,
    timeout_decoding,
)
from binscope.observability.checkpoints import CheckpointLog
from binscope.observability.clock import Clock, SystemClock
from binscope.sandbox.sampling import ProcessSampler, PsutilProcessSampler
from binscope.sandbox.scanner import OutputScanner, Stream

SHELL_PATH: Final[str] = "/bin/sh"
EXIT_NOT_EXECUTABLE: Final[int] = 126
EXIT_NOT_FOUND: Final[int] = 127
_NOT_EXECUTABLE_ERRNOS: Final[frozenset[int]] = frozenset(
    {errno.EACCES, errno.ENOEXEC, errno.EPERM, errno.EISDIR}
)
_TERMINAL_FDS: Final[dict[Stream, int]] = {Stream.STDOUT: 1, Stream.STDERR: 2}


class IoSetupError(OSError):
    """Pipes or the child process could not be created."""


@dataclass(frozen=True, slots=True)
class SupervisorOutcome:
    pid: int | None
    exit_code: int
    decoding: ExitDecoding
    wall_seconds: float
    timed_out: bool = False
    interrupted: bool = False
    spawned: bool = True

    @property
    def signal_number(self) -> int | None:
        return self.decoding.signal_number


@dataclass(slots=True)
class _LoopState:
    returncode: int | None = None
    ended_at: float | None = None
    timed_out: bool = False
    terminate_sent_at: float | None = None
    killed: bool = False
    interrupt_forwarded_at: float | None = None
    last_reported_peak_kb: int = 0


class ChildSupervisor:
    """Run one target to completion while capturing, forwarding and measuring it."""

    def __init__(
        self,
        *,
        checkpoints: CheckpointLog,
        result: AnalysisResult,
        sampler: ProcessSampler | None = None,
        clock: Clock | None = None,
        stdout_sink: BinaryIO | IO[bytes] | None = None,
        stderr_sink: BinaryIO | IO[bytes] | None = None,
        handle_sigint: bool = True,
        logger: Any | None = None,
    ) -> None:
        self._checkpoints = checkpoints
        self._result = result
        self._sampler = sampler if sampler is not None else PsutilProcessSampler()
        self._clock = clock if clock is not None else SystemClock()
        self._sinks: dict[Stream, BinaryIO | IO[bytes] | None] = {
            Stream.STDOUT: stdout_sink,
            Stream.STDERR: stderr_sink,
        }
        self._handle_sigint = handle_sigint
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._interrupt_requested = threading.Event()
        self._closed_sinks: set[Stream] = set()

    def request_interrupt(self) -> None:
        """Ask the loop to forward SIGINT to the child (also used by the signal handler)."""

        self._interrupt_requested.set()

    def run(self, config: RunConfig) -> SupervisorOutcome:
        if not config.executes_target:
            raise ConfigError(f"mode {config.mode.value} never executes the target")
        if not config.force_execution:
            raise ConfigError("refusing to execute the target without force_execution")

        argv = self._command_for(config)
        self._checkpoints.log(
            "FUNC: target_execution_start", CheckpointCategory.FUNC, config.command_line
        )
        self._interrupt_requested.clear()

        started_at = self._clock.monotonic()
        try:
            process = subprocess.Popen(
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                close_fds=True,
                bufsize=0,
            )
        except OSError as exc:
            outcome = self._spawn_failure(exc, config, started_at)
            self._finish(outcome, config)
            return outcome

        self._result.execution.child_pid = process.pid
        self._checkpoints.log(
            "EXEC: target_started",
            CheckpointCategory.SYSCALL,
            f"pid={process.pid} mode={config.mode.value}",
        )
        self._logger.info(
            "target started",
            pid=process.pid,
            mode=config.mode.value,
            command=config.command_line,
        )

        scanner = OutputScanner(self._result.io)
        state = _LoopState()
        try:
            with self._sigint_forwarding():
                self._supervise(process, config, scanner, state, started_at)
        finally:
            _close_pipes(process)
            if process.poll() is None:
                process.kill()
                process.wait()
            if state.returncode is None:
                state.returncode = process.returncode
                state.ended_at = self._clock.monotonic()

        ended_at = state.ended_at if state.ended_at is not None else self._clock.monotonic()
        returncode = state.returncode if state.returncode is not None else 0
        exit_code = exit_code_from_returncode(returncode)
        decoding = timeout_decoding(exit_code) if state.timed_out else decode_exit(exit_code)
        outcome = SupervisorOutcome(
            pid=process.pid,
            exit_code=exit_code,
            decoding=decoding,
            wall_seconds=max(0.0, ended_at - started_at),
            timed_out=state.timed_out,
            interrupted=state.interrupt_forwarded_at is not None,
        )
        self._finish(outcome, config)
        return outcome

    def _supervise(
        self,
        process: subprocess.Popen[bytes],
        config: RunConfig,
        scanner: OutputScanner,
        state: _LoopState,
        started_at: float,
    ) -> None:
        settings = config.settings
        assert process.stdout is not None and process.stderr is not None
        open_fds: dict[int, Stream] = {
            process.stdout.fileno(): Stream.STDOUT,
            process.stderr.fileno(): Stream.STDERR,
        }
        for fd in open_fds:
            os.set_blocking(fd, False)

        sample_network = config.has(Feature.NETWORK)
        drain_deadline: float | None = None

        while True:
            now = self._clock.monotonic()
            if state.returncode is None:
                polled = process.poll()
                if polled is not None:
                    state.returncode = polled
                    state.ended_at = now
                    drain_deadline = now + settings.kill_grace_seconds
                else:
                    self._sample(process.pid, settings.memory_step_kb, state, sample_network)
                    self._enforce_limits(process, settings, state, started_at, now)

            if not open_fds:
                if state.returncode is not None:
                    break
                time.sleep(settings.poll_interval_seconds)
                continue
            if drain_deadline is not None and now >= drain_deadline:
                # A descendant still holds the pipes open after the child exited.
                self._logger.debug("pipe drain deadline reached", pid=process.pid)
                break

            readable, _, _ = select.select(list(open_fds), [], [], settings.poll_interval_seconds)
            for fd in readable:
                try:
                    chunk = os.read(fd, settings.read_chunk_bytes)
                except BlockingIOError:
                    continue
                if not chunk:
                    del open_fds[fd]
                    continue
                stream = open_fds[fd]
                self._forward(stream, chunk, settings.forward_output)
                scanner.feed(stream, chunk)

            if settings.sample_sleep_seconds:
                time.sleep(settings.sample_sleep_seconds)

    def _sample(
        self,
        pid: int,
        step_kb: int,
        state: _LoopState,
        sample_network: bool,
    ) -> None:
        rss_kb = self._sampler.rss_kb(pid)
        if rss_kb is not None and self._result.memory.observe(rss_kb):
            peak = self._result.memory.peak_rss_kb
            if peak - state.last_reported_peak_kb >= step_kb:
                state.last_reported_peak_kb = peak
                self._checkpoints.log("MEM: new_peak", CheckpointCategory.MEM, f"{peak} KB")
        if sample_network:
            for remote in self._sampler.established_connections(pid):
                if self._result.network.add_observed_connection(remote):
                    self._checkpoints.log(
                        "NET: connection_observed", CheckpointCategory.NET, remote
                    )

    def _enforce_limits(
        self,
        process: subprocess.Popen[bytes],
        settings: AnalyzerSettings,
        state: _LoopState,
        started_at: float,
        now: float,
    ) -> None:
        timeout = settings.timeout_seconds
        if timeout is not None and not state.timed_out and now - started_at >= timeout:
            state.timed_out = True
            state.terminate_sent_at = now
            self._checkpoints.log(
                "EXEC: target_timeout",
                CheckpointCategory.EXIT,
                f"limit={timeout:g}s pid={process.pid}",
            )
            self._logger.warning("target exceeded wall-clock limit", pid=process.pid, limit=timeout)
            _send(process, signal.SIGTERM)

        if self._interrupt_requested.is_set() and state.interrupt_forwarded_at is None:
            state.interrupt_forwarded_at = now
            self._logger.warning("forwarding SIGINT to target", pid=process.pid)
            _send(process, signal.SIGINT)

        pending = [
            sent
            for sent in (state.terminate_sent_at, state.interrupt_forwarded_at)
            if sent is not None
        ]
        if pending and not state.killed and now - min(pending) >= settings.kill_grace_seconds:
            state.killed = True
            self._logger.warning("grace period expired; killing target", pid=process.pid)
            _send(process, signal.SIGKILL)

    def _forward(self, stream: Stream, chunk: bytes, enabled: bool) -> None:
        if not enabled:
            return
        if stream in self._closed_sinks:
            return
        sink = self._sinks[stream]
        try:
            if sink is None:
                os.write(_TERMINAL_FDS[stream], chunk)
            else:
                sink.write(chunk)
                sink.flush()
        except BrokenPipeError:
            self._closed_sinks.add(stream)
            self._logger.debug("output sink closed", stream=stream.value)

    def _spawn_failure(
        self,
        exc: OSError,
        config: RunConfig,
        started_at: float,
    ) -> SupervisorOutcome:
        if config.mode is ExecutionMode.DIRECT_EXEC and isinstance(exc, FileNotFoundError):
            code = EXIT_NOT_FOUND
        elif config.mode is ExecutionMode.DIRECT_EXEC and exc.errno in _NOT_EXECUTABLE_ERRNOS:
            code = EXIT_NOT_EXECUTABLE
        else:
            self._checkpoints.log(
                "SYSTEM: io_setup_failed",
                CheckpointCategory.MISC,
                f"{type(exc).__name__}: {exc.strerror or exc}",
            )
            raise IoSetupError(
                exc.errno or errno.EIO,
                f"unable to start {config.command_line}: {exc.strerror or exc}",
            ) from exc

        self._checkpoints.log(
            "EXEC: exec_failed",
            CheckpointCategory.SYSCALL,
            f"{config.target_path}: {exc.strerror or exc}",
        )
        self._logger.warning("target could not be executed", target=config.target_path, code=code)
        return SupervisorOutcome(
            pid=None,
            exit_code=code,
            decoding=decode_exit(code),
            wall_seconds=max(0.0, self._clock.monotonic() - started_at),
            spawned=False,
        )

    def _finish(self, outcome: SupervisorOutcome, config: RunConfig) -> None:
        execution = self._result.execution
        execution.exit_code = outcome.exit_code
        execution.exit_tag = outcome.decoding.tag
        execution.exit_description = outcome.decoding.description
        execution.execution_time = outcome.wall_seconds
        execution.signal_number = outcome.signal_number
        execution.timed_out = outcome.timed_out
        execution.interrupted = outcome.interrupted
        execution.ran = True
        startup, processing, cleanup = split_execution_time(
            outcome.wall_seconds, ToolClass.UNKNOWN
        )
        execution.startup_time = startup
        execution.processing_time = processing
        execution.cleanup_time = cleanup

        if outcome.signal_number is not None and not outcome.timed_out:
            self._checkpoints.log(
                "SEC: abnormal_termination",
                CheckpointCategory.SEC,
                f"{outcome.decoding.description} (exit {outcome.exit_code})",
            )
        if outcome.spawned:
            self._checkpoints.log(
                "EXEC: target_completed",
                CheckpointCategory.SYSCALL,
                f"exit={outcome.exit_code} time={outcome.wall_seconds:.3f}s",
            )
        self._checkpoints.log(
            "FUNC: target_execution_end", CheckpointCategory.FUNC, outcome.decoding.tag.value
        )
        self._logger.info(
            "target finished",
            exit_code=outcome.exit_code,
            tag=outcome.decoding.tag.value,
            wall_seconds=round(outcome.wall_seconds, 6),
            timed_out=outcome.timed_out,
            mode=config.mode.value,
        )

    @staticmethod
    def _command_for(config: RunConfig) -> list[str]:
        if config.mode is ExecutionMode.SHELL_MONITOR:
            return [SHELL_PATH, "-c", config.target_path]
        return [config.target_path, *config.target_argv]

    @contextmanager
    def _sigint_forwarding(self) -> Iterator[None]:
        if not self._handle_sigint or threading.current_thread() is not threading.main_thread():
            yield
            return

        def _on_sigint(signum: int, frame: object) -> None:
            self._interrupt_requested.set()

        previous = signal.signal(signal.SIGINT, _on_sigint)
        try:
            yield
        finally:
            signal.signal(signal.SIGINT, previous)


def _send(process: subprocess.Popen[bytes], signum: signal.Signals) -> None:
    try:
        process.send_signal(signum)
    except ProcessLookupError:
        pass


def _close_pipes(process: subprocess.Popen[bytes]) -> None:
    for pipe in (process.stdout, process.stderr):
        if pipe is not None and not pipe.closed:
            pipe.close()


__all__ = [
    "EXIT_NOT_EXECUTABLE",
    "EXIT_NOT_FOUND",
    "SHELL_PATH",
    "ChildSupervisor",
    "IoSetupError",
    "SupervisorOutcome",
]
