"""Output rendering for binscope reports.

File: src/binscope/ui/render.py
Last updated: 2026-10-17

Purpose
- Render report documents for the terminal through a packaged Jinja2 template.
- Respect NO_COLOR environment variable and --no-color CLI flag.

What should be included in this file
- CLIRenderer class with the human, JSON and combined report emitters.
- Factory function to create a renderer with appropriate settings.

Functional requirements
- The human report is a pure function of the JSON document.
- Reports go to stdout; diagnostics never do.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING, Final, TextIO

from jinja2 import Environment, PackageLoader, StrictUndefined

from binscope.ui.report import dump_report

if TYPE_CHECKING:
    from binscope.domain.models import JSONValue

REPORT_TEMPLATE: Final[str] = "report.txt.j2"
RULE: Final[str] = "=" * 63
JSON_SEPARATOR: Final[str] = "JSON Output:"

_ANSI: Final[dict[str, str]] = {
    "reset": "\033[0m",
    "red": "\033[31m",
    "green": "\033[32m",
    "yellow": "\033[33m",
    "blue": "\033[34m",
    "bold": "\033[1m",
}
_RISK_COLORS: Final[dict[str, str]] = {
    "minimal": "green",
    "low": "green",
    "moderate": "yellow",
    "high": "red",
    "critical": "red",
}
_INDICATOR_LABELS: Final[tuple[tuple[str, str], ...]] = (
    ("buffer_overflow_risk", "Buffer overflow risk"),
    ("memory_leak_indicators", "Memory leak indicators"),
    ("use_after_free_risk", "Use-after-free risk"),
    ("format_string_vulnerability", "Format string vulnerability"),
    ("null_pointer_risk", "Null pointer risk"),
    ("integer_overflow_risk", "Integer overflow risk"),
    ("uninitialized_memory_risk", "Uninitialized memory risk"),
    ("dangerous_function_count", "Dangerous function usage"),
)


def _color_allowed(no_color_flag: bool, stream: TextIO) -> bool:
    """Check whether color output should be attempted."""

    if no_color_flag:
        return False
    if os.environ.get("NO_COLOR", ""):
        return False
    return hasattr(stream, "isatty") and stream.isatty()


def performance_rating(execution_time: float) -> tuple[str, str]:
    if execution_time < 0.1:
        return "Excellent", "green"
    if execution_time < 1.0:
        return "Good", "blue"
    if execution_time < 5.0:
        return "Moderate", "yellow"
    return "Needs Optimization", "red"


class CLIRenderer:
    """Report renderer bound to one output stream.

    Produces deterministic plain text unless color is allowed.
    """

    def __init__(
        self,
        *,
        no_color: bool = False,
        show_checkpoints: bool = False,
        stream: TextIO | None = None,
    ) -> None:
        self._stream = stream if stream is not None else sys.stdout
        self._color = _color_allowed(no_color, self._stream)
        self.show_checkpoints = show_checkpoints
        self._environment = Environment(
            loader=PackageLoader("binscope.ui", "templates"),
            undefined=StrictUndefined,
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            newline_sequence="\n",
            keep_trailing_newline=True,
        )
        self._environment.filters["paint"] = self._paint

    @property
    def color(self) -> bool:
        return self._color

    def render_human(self, document: dict[str, JSONValue]) -> str:
        """Render the human report text for ``document``."""

        execution = document.get("execution")
        elapsed = 0.0
        if isinstance(execution, dict):
            raw = execution.get("execution_time", 0.0)
            elapsed = float(raw) if isinstance(raw, int | float) else 0.0
        rating, rating_color = performance_rating(elapsed)

        template = self._environment.get_template(REPORT_TEMPLATE)
        return template.render(
            report=document,
            rule=RULE,
            rating=rating,
            rating_color=rating_color,
            risk_colors=_RISK_COLORS,
            indicator_labels=_INDICATOR_LABELS,
            show_checkpoints=self.show_checkpoints,
        )

    def human(self, document: dict[str, JSONValue]) -> None:
        self._write(self.render_human(document))

    def json(self, document: dict[str, JSONValue]) -> None:
        self._write(dump_report(document) + "\n")

    def both(self, document: dict[str, JSONValue]) -> None:
        """Human report, then a ``JSON Output:`` line, then the JSON document."""

        self.human(document)
        self._write(f"\n{JSON_SEPARATOR}\n")
        self.json(document)

    def text(self, line: str) -> None:
        self._write(line.rstrip("\n") + "\n")

    def _paint(self, value: object, color: str) -> str:
        text = str(value)
        if not self._color or color not in _ANSI:
            return text
        return f"{_ANSI[color]}{text}{_ANSI['reset']}"

    def _write(self, text: str) -> None:
        self._stream.write(text)
        self._stream.flush()


def create_renderer(
    *,
    no_color: bool = False,
    show_checkpoints: bool = False,
    stream: TextIO | None = None,
) -> CLIRenderer:
    """Create a CLI renderer with the given settings."""

    return CLIRenderer(no_color=no_color, show_checkpoints=show_checkpoints, stream=stream)


__all__ = [
    "JSON_SEPARATOR",
    "CLIRenderer",
    "create_renderer",
    "performance_rating",
]
