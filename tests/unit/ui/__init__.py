"""Outcome builders shared by the UI tests."""

from __future__ import annotations

from binscope.config import RunConfig
from binscope.control_plane.controller import AnalysisOutcome
from binscope.domain.models import AnalysisResult
from binscope.enrichment.exit_codes import decode_exit
from binscope.observability.checkpoints import CheckpointLog
from binscope.sandbox.supervisor import SupervisorOutcome

from .. import FakeClock


def make_outcome(
    config: RunConfig,
    *,
    exit_code: int = 0,
    ran: bool = True,
    interrupted: bool = False,
    **kwargs: object,
) -> AnalysisOutcome:
    """Outcome for ``config``; executing modes get a supervisor record for ``exit_code``."""

    result = AnalysisResult(target_path=config.target_path, target_argv=config.target_argv)
    log = CheckpointLog(clock=FakeClock())
    log.init()
    supervisor = None
    if config.executes_target and ran:
        decoding = decode_exit(exit_code)
        supervisor = SupervisorOutcome(
            pid=4242, exit_code=exit_code, decoding=decoding, wall_seconds=0.004
        )
        execution = result.execution
        execution.exit_code = exit_code
        execution.exit_tag = decoding.tag
        execution.exit_description = decoding.description
        execution.signal_number = decoding.signal_number
        execution.execution_time = 0.004
        execution.ran = True
    return AnalysisOutcome(
        run_id="0123456789ab",
        config=config,
        result=result,
        checkpoints=log,
        supervisor=supervisor,
        interrupted=interrupted,
        **kwargs,  # type: ignore[arg-type]
    )


__all__ = ["make_outcome"]
