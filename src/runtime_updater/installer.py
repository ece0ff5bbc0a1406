"""Install/uninstall supervision for one runtime target.

Lifecycle of ``InstallSupervisor.install``:
1. Wait until no runtime process (java.exe, javaw.exe, ...) is running
2. Uninstall the existing copy if the update is a legacy same-update revision
3. Run the Windows Installer package silently with a verbose log
4. Classify the exit code; on failure, pull error lines from the log tail

Running processes are never terminated; the wait has no limit unless a
``wait_timeout`` is configured.
"""

from __future__ import annotations

import re
import subprocess
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from pathlib import Path, PureWindowsPath
from typing import Any, Protocol

from runtime_updater.constants import (
    BASE_INSTALL_FEATURES,
    DEVELOPMENT_INSTALL_FEATURES,
    EXIT_SUCCESS,
    INSTALLER_LOG_MAX_MATCHES,
    INSTALLER_LOG_TAIL_LINES,
    MSIEXEC,
    PROCESS_POLL_INTERVAL_SECONDS,
    PROCESS_WAIT_NOTICE_SECONDS,
    RESTART_PENDING_EXIT_CODES,
    RUNTIME_PROCESS_NAMES,
)
from runtime_updater.errors import ProcessWaitTimeoutError
from runtime_updater.logging import get_logger
from runtime_updater.models import InstalledComponent, PackageType, ReleaseAsset
from runtime_updater.processes import ProcessInspector
from runtime_updater.versions import is_legacy_stream, is_revision_update

log = get_logger("runtime_updater.installer")

_LOG_ERROR_PATTERNS = (
    re.compile(r"\bError \d+:"),
    re.compile(r"^MSI \([a-z]\) .*(?:Note: 1: \d+|Return value 3)"),
    re.compile(r"\b(?:failed|failure|cannot|could not)\b", re.IGNORECASE),
)


class InstallStatus(StrEnum):
    """Classified installer exit code."""

    SUCCEEDED = "succeeded"
    RESTART_REQUIRED = "restart_required"
    FAILED = "failed"


class Operation(StrEnum):
    INSTALL = "install"
    UNINSTALL = "uninstall"


@dataclass
class InstallOutcome:
    """Result of one supervised install (or of the uninstall that aborted it)."""

    operation: Operation
    status: InstallStatus
    exit_code: int
    log_path: Path | None = None
    log_excerpt: list[str] = field(default_factory=list)
    revision_uninstalled: bool = False
    uninstall_restart_required: bool = False

    @property
    def ok(self) -> bool:
        return self.status is not InstallStatus.FAILED

    @property
    def restart_required(self) -> bool:
        return self.status is InstallStatus.RESTART_REQUIRED or (
            self.ok and self.uninstall_restart_required
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation.value,
            "status": self.status.value,
            "exit_code": self.exit_code,
            "log_path": str(self.log_path) if self.log_path else None,
            "log_excerpt": self.log_excerpt,
            "revision_uninstalled": self.revision_uninstalled,
            "restart_required": self.restart_required,
        }


def classify_exit_code(exit_code: int) -> InstallStatus:
    """Map a Windows Installer exit code to an ``InstallStatus``."""
    if exit_code == EXIT_SUCCESS:
        return InstallStatus.SUCCEEDED
    if exit_code in RESTART_PENDING_EXIT_CODES:
        return InstallStatus.RESTART_REQUIRED
    return InstallStatus.FAILED


def _read_log_text(path: Path) -> str:
    raw = path.read_bytes()
    if raw.startswith((b"\xff\xfe", b"\xfe\xff")):
        return raw.decode("utf-16", errors="replace")
    return raw.decode("utf-8", errors="replace")


def scan_installer_log(
    path: Path,
    *,
    tail_lines: int = INSTALLER_LOG_TAIL_LINES,
    max_matches: int = INSTALLER_LOG_MAX_MATCHES,
) -> list[str]:
    """Return error-looking lines from the end of an installer log.

    msiexec writes UTF-16 logs; UTF-8 is accepted too. A missing or
    unreadable log yields an empty list.
    """
    try:
        text = _read_log_text(path)
    except OSError as exc:
        log.debug("installer_log_unreadable", path=str(path), error=str(exc))
        return []

    lines = [line.strip() for line in text.splitlines()[-tail_lines:]]
    matches: list[str] = []
    for line in lines:
        if line and any(p.search(line) for p in _LOG_ERROR_PATTERNS):
            if not matches or matches[-1] != line:
                matches.append(line)
    return matches[-max_matches:]


class InstallerRunner(Protocol):
    """Runs an installer executable and reports its exit code."""

    def run(self, executable: str, args: Sequence[str]) -> int: ...


class SubprocessInstallerRunner:
    """``InstallerRunner`` that blocks on ``subprocess.run``."""

    def __init__(self, timeout: float | None = None) -> None:
        self._timeout = timeout

    def run(self, executable: str, args: Sequence[str]) -> int:
        cmd = [executable, *args]
        log.debug("installer_exec", cmd=cmd)
        completed = subprocess.run(  # nosec B603
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            timeout=self._timeout,
            check=False,
        )
        return completed.returncode


class InstallSupervisor:
    """Drives wait → (revision uninstall) → install → classify for one target."""

    def __init__(
        self,
        runner: InstallerRunner,
        inspector: ProcessInspector,
        log_dir: Path,
        install_root: str,
        *,
        msiexec: str = MSIEXEC,
        process_names: Sequence[str] = RUNTIME_PROCESS_NAMES,
        poll_interval: float = PROCESS_POLL_INTERVAL_SECONDS,
        wait_timeout: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._runner = runner
        self._inspector = inspector
        self._log_dir = Path(log_dir)
        self._install_root = install_root
        self._msiexec = msiexec
        self._process_names = tuple(process_names)
        self._poll_interval = poll_interval
        self._wait_timeout = wait_timeout
        self._sleep = sleep
        self._clock = clock
        self._now = now

    # ------------------------------------------------------------------
    # Primary flow
    # ------------------------------------------------------------------

    def install(
        self,
        asset: ReleaseAsset,
        installer_path: Path,
        component: InstalledComponent | None = None,
    ) -> InstallOutcome:
        """Install *installer_path*; *component* is None for a fresh install.

        Raises ``ProcessWaitTimeoutError`` only when a wait timeout is set.
        """
        self.wait_for_blocking_processes()

        revision_uninstalled = False
        uninstall_restart = False
        if component is not None and self.requires_revision_uninstall(component, asset):
            log.info(
                "installer_revision_uninstall",
                target=component.label,
                installed=str(component.version),
                available=str(asset.version),
            )
            removal = self.uninstall(component)
            if not removal.ok:
                return removal
            revision_uninstalled = True
            uninstall_restart = removal.restart_required

        # After a revision uninstall nothing is left to upgrade.
        fresh = component is None or revision_uninstalled
        log_path = self._log_path(installer_path.stem, Operation.INSTALL)
        args = self.build_install_args(asset, installer_path, log_path, fresh=fresh)
        log.info(
            "installer_started",
            asset=asset.name,
            mode="fresh" if fresh else "upgrade",
            log_path=str(log_path),
        )
        exit_code = self._runner.run(self._msiexec, args)
        outcome = self._classify(Operation.INSTALL, exit_code, log_path)
        outcome.revision_uninstalled = revision_uninstalled
        outcome.uninstall_restart_required = uninstall_restart
        return outcome

    def uninstall(self, component: InstalledComponent) -> InstallOutcome:
        """Silently remove *component* by its uninstall identifier."""
        log_path = self._log_path(_safe_stem(component.display_name), Operation.UNINSTALL)
        args = ["/x", component.uninstall_id, "/qn", "/norestart", "/L*V", str(log_path)]
        log.info("uninstaller_started", target=component.label, log_path=str(log_path))
        exit_code = self._runner.run(self._msiexec, args)
        return self._classify(Operation.UNINSTALL, exit_code, log_path)

    def wait_for_blocking_processes(self) -> None:
        """Block until no runtime process is running, polling at a fixed interval."""
        pids = self._inspector.find_running(self._process_names)
        if not pids:
            return

        log.warning(
            "installer_waiting_for_processes",
            processes=list(self._process_names),
            pids=pids,
            poll_interval=self._poll_interval,
        )
        start = self._clock()
        minutes_reported = 0
        while pids:
            elapsed = self._clock() - start
            if self._wait_timeout is not None and elapsed >= self._wait_timeout:
                raise ProcessWaitTimeoutError(
                    f"runtime still in use after {int(elapsed)}s", pids=pids
                )
            self._sleep(self._poll_interval)
            elapsed = self._clock() - start
            minutes = int(elapsed // PROCESS_WAIT_NOTICE_SECONDS)
            pids = self._inspector.find_running(self._process_names)
            if pids and minutes > minutes_reported:
                minutes_reported = minutes
                log.info("installer_still_waiting", minutes=minutes, pids=pids)

        log.info("installer_processes_cleared", waited_seconds=round(self._clock() - start, 1))

    # ------------------------------------------------------------------
    # Decisions and arguments
    # ------------------------------------------------------------------

    @staticmethod
    def requires_revision_uninstall(component: InstalledComponent, asset: ReleaseAsset) -> bool:
        """Legacy-stream build-only updates need the old copy removed first."""
        return is_legacy_stream(component.stream) and is_revision_update(
            component.version, asset.version
        )

    def install_dir(self, asset: ReleaseAsset) -> str:
        dirname = f"{asset.package_type.value}-{asset.version.install_dir_version}-hotspot"
        return str(PureWindowsPath(self._install_root) / dirname) + "\\"

    def build_install_args(
        self,
        asset: ReleaseAsset,
        installer_path: Path,
        log_path: Path,
        *,
        fresh: bool,
    ) -> list[str]:
        args = ["/i", str(installer_path), "/qn", "/norestart", "/L*V", str(log_path)]
        if fresh:
            features = list(BASE_INSTALL_FEATURES)
            if asset.package_type is PackageType.DEVELOPMENT:
                features.extend(DEVELOPMENT_INSTALL_FEATURES)
            args.append(f"ADDLOCAL={','.join(features)}")
            args.append(f"INSTALLDIR={self.install_dir(asset)}")
        return args

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _log_path(self, stem: str, operation: Operation) -> Path:
        self._log_dir.mkdir(parents=True, exist_ok=True)
        stamp = self._now().strftime("%Y%m%d-%H%M%S")
        return self._log_dir / f"{stem}_{operation.value}_{stamp}.log"

    def _classify(self, operation: Operation, exit_code: int, log_path: Path) -> InstallOutcome:
        status = classify_exit_code(exit_code)
        outcome = InstallOutcome(
            operation=operation, status=status, exit_code=exit_code, log_path=log_path
        )
        if status is InstallStatus.FAILED:
            outcome.log_excerpt = scan_installer_log(log_path)
            log.error(
                f"{operation.value}er_failed",
                exit_code=exit_code,
                log_path=str(log_path),
                log_excerpt=outcome.log_excerpt,
            )
        elif status is InstallStatus.RESTART_REQUIRED:
            log.warning(f"{operation.value}er_restart_required", exit_code=exit_code)
        else:
            log.info(f"{operation.value}er_succeeded", exit_code=exit_code)
        return outcome


def _safe_stem(text: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]+", "_", text).strip("_") or "component"
