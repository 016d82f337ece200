"""
binscope — package root

File: src/binscope/__init__.py
Last updated: 2026-10-17

Purpose
- Package root. Defines public package-level metadata and import boundaries.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

from __future__ import annotations

from binscope.constants import VERSION

__version__ = VERSION

__all__ = ["__version__"]
