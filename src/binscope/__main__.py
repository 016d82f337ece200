"""Module entrypoint for ``python -m binscope``."""

from __future__ import annotations

from binscope.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
