"""Running-process lookup used to hold installs while the runtime is in use."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

import psutil

from runtime_updater.logging import get_logger

log = get_logger("runtime_updater.processes")


class ProcessInspector(Protocol):
    """Anything that can report running processes by executable name."""

    def find_running(self, names: Iterable[str]) -> list[int]: ...


class PsutilProcessInspector:
    """``ProcessInspector`` backed by ``psutil``; names match case-insensitively."""

    def find_running(self, names: Iterable[str]) -> list[int]:
        wanted = {name.lower() for name in names}
        pids: list[int] = []
        for proc in psutil.process_iter(["pid", "name"]):
            try:
                name = proc.info.get("name") or ""
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
            if name.lower() in wanted:
                pids.append(int(proc.info["pid"]))
        if pids:
            log.debug("processes_found", names=sorted(wanted), pids=pids)
        return sorted(pids)
