"""Enrichment plane: exit decoding, external tool runner and the ordered post-mortem passes."""

from binscope.enrichment.base import (
    EnrichmentContext,
    EnrichmentPass,
    EnrichmentUnavailable,
    LocalToolRunner,
    ToolResult,
    ToolRunner,
    ToolSpec,
)
from binscope.enrichment.exit_codes import (
    KNOWN_TAGS,
    ExitDecoding,
    SecurityDelta,
    decode_exit,
    exit_code_from_returncode,
    exit_code_from_wait_status,
    timeout_decoding,
)
from binscope.enrichment.pipeline import EnrichmentPipeline, PipelineReport, default_passes
from binscope.enrichment.signatures import (
    SignatureRegistry,
    SignatureRegistryError,
    default_signatures,
    load_signatures,
)

__all__ = [
    "KNOWN_TAGS",
    "EnrichmentContext",
    "EnrichmentPass",
    "EnrichmentPipeline",
    "EnrichmentUnavailable",
    "ExitDecoding",
    "LocalToolRunner",
    "PipelineReport",
    "SecurityDelta",
    "SignatureRegistry",
    "SignatureRegistryError",
    "ToolResult",
    "ToolRunner",
    "ToolSpec",
    "decode_exit",
    "default_passes",
    "default_signatures",
    "exit_code_from_returncode",
    "exit_code_from_wait_status",
    "load_signatures",
    "timeout_decoding",
]
