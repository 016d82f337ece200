"""Per-process resource sampling for a supervised child."""

from __future__ import annotations

from typing import Protocol

import psutil

_BYTES_PER_KB = 1024


class ProcessSampler(Protocol):
    """Source for child process samples (injectable for tests)."""

    def rss_kb(self, pid: int) -> int | None: ...

    def established_connections(self, pid: int) -> tuple[str, ...]: ...


class PsutilProcessSampler:
    """Sample resident memory and the inet connection table with ``psutil``."""

    def rss_kb(self, pid: int) -> int | None:
        try:
            memory = psutil.Process(pid).memory_info()
        except psutil.Error:
            return None
        return int(memory.rss) // _BYTES_PER_KB

    def established_connections(self, pid: int) -> tuple[str, ...]:
        try:
            process = psutil.Process(pid)
            lister = getattr(process, "net_connections", None) or process.connections
            connections = lister(kind="inet")
        except psutil.Error:
            return ()

        remotes: list[str] = []
        for connection in connections:
            if connection.status != psutil.CONN_ESTABLISHED or not connection.raddr:
                continue
            remote = f"{connection.raddr.ip}:{connection.raddr.port}"
            if remote not in remotes:
                remotes.append(remote)
        return tuple(remotes)


__all__ = ["ProcessSampler", "PsutilProcessSampler"]
