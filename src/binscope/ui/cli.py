"""Command-line interface for binscope."""

from __future__ import annotations

import argparse
from collections.abc import Sequence
from typing import Final

from binscope.config import RunConfig, RunConfigBuilder, load_settings
from binscope.constants import VERSION
from binscope.control_plane import AnalysisController, AnalysisOutcome
from binscope.domain.models import Feature, OutputFormat, Verbosity
from binscope.main import ExitCode
from binscope.observability.logging import (
    LoggingConfig,
    level_for_verbosity,
    setup_logging,
    shutdown_logging,
)
from binscope.ui.render import CLIRenderer, create_renderer
from binscope.ui.report import build_report, checkpoints_exported

PROG: Final[str] = "binscope"


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the single-command argument parser."""

    parser = argparse.ArgumentParser(
        prog=PROG,
        description=(
            "binscope — POSIX executable analyzer.\n\n"
            "Runs a target under supervision (only with -f), measures it, and reports\n"
            "performance, language, network and security findings.\n\n"
            "Common workflows:\n"
            "  binscope -f /bin/ls -la                 Analyze ls\n"
            "  binscope -vv -f /usr/bin/sort file.txt  Deep analysis\n"
            "  binscope --json -f /usr/bin/gcc --version\n"
            "  binscope -f --monitor 'make -j4'        Monitor a shell command\n"
            "  binscope --dry-run ./tool               Simulate without executing\n"
            "  binscope --safe-analyze ./package.deb   Static inspection only\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"{PROG} {VERSION}")

    verbosity = parser.add_argument_group("verbosity")
    verbosity.add_argument(
        "-q", "--quiet", action="store_true", default=False, help="Errors only."
    )
    verbosity.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Verbose output; -vv enables deep, performance, security and network analysis.",
    )
    verbosity.add_argument(
        "--very-verbose",
        action="store_true",
        default=False,
        help="Same as -vv.",
    )

    output = parser.add_argument_group("output").add_mutually_exclusive_group()
    output.add_argument(
        "--json",
        dest="output_format",
        action="store_const",
        const=OutputFormat.JSON,
        help="Emit the JSON report.",
    )
    output.add_argument(
        "--human",
        dest="output_format",
        action="store_const",
        const=OutputFormat.HUMAN,
        help="Emit the human-readable report (default).",
    )
    output.add_argument(
        "--both",
        dest="output_format",
        action="store_const",
        const=OutputFormat.BOTH,
        help="Emit the human report followed by the JSON report.",
    )

    features = parser.add_argument_group("analysis modules")
    for feature in (
        Feature.MEMORY,
        Feature.IO,
        Feature.SECURITY,
        Feature.PERFORMANCE,
        Feature.NETWORK,
    ):
        features.add_argument(
            f"--{feature.value}",
            dest="features",
            action="append_const",
            const=feature,
            help=f"Enable {feature.value} analysis.",
        )
    features.add_argument(
        "--all", action="store_true", default=False, help="Enable every analysis module."
    )

    modes = parser.add_argument_group("execution")
    modes.add_argument(
        "-f",
        "--force",
        action="store_true",
        default=False,
        help="Required to actually execute the target.",
    )
    modes.add_argument(
        "--monitor",
        metavar="COMMAND",
        default=None,
        help="Monitor a shell command run through /bin/sh -c (requires -f).",
    )
    modes.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        help="Validate and show what would run without executing anything.",
    )
    modes.add_argument(
        "--safe-analyze",
        metavar="PATH",
        default=None,
        help="Inspect a file statically; the target is never executed.",
    )
    modes.add_argument(
        "--timeout",
        metavar="SECONDS",
        type=float,
        default=None,
        help="Wall-clock ceiling for the target (default: unlimited).",
    )

    settings = parser.add_argument_group("settings")
    settings.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to a binscope TOML settings file (default: ./binscope.toml if present).",
    )
    settings.add_argument(
        "--log-file",
        default=None,
        help="Write JSON-lines diagnostics to this file.",
    )
    settings.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )

    parser.add_argument("target", nargs="?", default=None, help="Executable to analyze.")
    parser.add_argument(
        "target_args",
        nargs=argparse.REMAINDER,
        help="Arguments passed through to the target.",
    )
    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, run one analysis, render it, and return the process exit code."""

    parser = build_parser()
    try:
        namespace = parser.parse_args(list(argv) if argv is not None else None)
    except SystemExit as exc:
        return int(ExitCode.SUCCESS) if exc.code in (0, None) else int(ExitCode.FAILURE)

    verbosity = _verbosity(namespace)
    settings = load_settings(
        namespace.config_path,
        cli_overrides={
            "supervisor.timeout_seconds": namespace.timeout,
            "logging.file": namespace.log_file,
        },
    )
    handle = setup_logging(
        LoggingConfig(
            level=level_for_verbosity(verbosity, settings.log_level or None),
            log_file=settings.log_file or None,
        )
    )
    try:
        config = _build_run_config(namespace, verbosity).settings(settings).build()
        outcome = AnalysisController().run(config)
        _emit_report(outcome, _get_renderer(namespace, outcome))
        return exit_code_for(outcome)
    finally:
        shutdown_logging(handle)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def exit_code_for(outcome: AnalysisOutcome) -> int:
    """Map a finished run to the analyzer's exit code."""

    if outcome.interrupted:
        return int(ExitCode.INTERRUPTED)
    config = outcome.config
    if (
        config.executes_target
        and config.settings.mirror_target_exit
        and not outcome.target_succeeded
    ):
        return int(ExitCode.FAILURE)
    return int(ExitCode.SUCCESS)


def _verbosity(args: argparse.Namespace) -> Verbosity:
    if args.very_verbose or args.verbose >= 2:
        return Verbosity.VERY_VERBOSE
    if args.verbose == 1:
        return Verbosity.VERBOSE
    if args.quiet:
        return Verbosity.QUIET
    return Verbosity.NORMAL


def _build_run_config(args: argparse.Namespace, verbosity: Verbosity) -> RunConfigBuilder:
    builder = (
        RunConfigBuilder()
        .target(args.target, args.target_args or ())
        .monitor(args.monitor)
        .safe_analyze(args.safe_analyze)
        .dry_run(args.dry_run)
        .force(args.force)
        .verbosity(verbosity)
        .output_format(args.output_format or OutputFormat.HUMAN)
        .features(args.features or ())
    )
    if args.all:
        builder.all_features()
    return builder


def _get_renderer(args: argparse.Namespace, outcome: AnalysisOutcome) -> CLIRenderer:
    return create_renderer(
        no_color=bool(args.no_color),
        show_checkpoints=checkpoints_exported(outcome),
    )


def _emit_report(outcome: AnalysisOutcome, renderer: CLIRenderer) -> None:
    document = build_report(outcome)
    config: RunConfig = outcome.config
    if config.output_format is OutputFormat.JSON:
        renderer.json(document)
    elif config.output_format is OutputFormat.BOTH:
        renderer.both(document)
    else:
        renderer.human(document)


__all__ = ["build_parser", "exit_code_for", "run_cli"]
