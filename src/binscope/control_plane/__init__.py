"""Control plane: per-run orchestration and the non-executing safe-analysis front-end."""

from binscope.control_plane.controller import (
    DEFAULT_TRIGGERS,
    AnalysisController,
    AnalysisOutcome,
    install_default_triggers,
)
from binscope.control_plane.safe_analysis import (
    RiskLevel,
    SafeAnalysisReport,
    SafeAnalyzer,
    risk_level,
)

__all__ = [
    "DEFAULT_TRIGGERS",
    "AnalysisController",
    "AnalysisOutcome",
    "RiskLevel",
    "SafeAnalysisReport",
    "SafeAnalyzer",
    "install_default_triggers",
    "risk_level",
]
