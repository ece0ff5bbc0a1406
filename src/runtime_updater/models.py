"""Value objects passed between the update pipeline stages.

All models are plain dataclasses with ``to_dict`` for log/report output.
They are owned by the call that produced them and never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any

from runtime_updater.errors import FailureKind
from runtime_updater.versions import Version

# ------------------------------------------------------------------
# Targets
# ------------------------------------------------------------------


class PackageType(StrEnum):
    """Runtime-only or full development package."""

    RUNTIME = "jre"
    DEVELOPMENT = "jdk"

    @property
    def label(self) -> str:
        return self.value.upper()

    @classmethod
    def from_label(cls, label: str) -> PackageType:
        """Accept ``jre``/``jdk`` or ``Runtime``/``Development`` in any case."""
        key = label.strip().lower()
        aliases = {"runtime": cls.RUNTIME, "development": cls.DEVELOPMENT}
        if key in aliases:
            return aliases[key]
        return cls(key)


class Architecture(StrEnum):
    """Installer architecture."""

    X64 = "x64"
    X86 = "x86"

    @property
    def asset_token(self) -> str:
        """Architecture token as written in upstream asset names."""
        return _ARCH_ASSET_TOKENS[self]


_ARCH_ASSET_TOKENS = {
    Architecture.X64: "x64_windows",
    Architecture.X86: "x86-32_windows",
}


@dataclass(frozen=True)
class InstalledComponent:
    """One locally detected runtime installation."""

    stream: str
    package_type: PackageType
    architecture: Architecture
    version: Version
    uninstall_id: str
    display_name: str
    install_location: str = ""

    @property
    def label(self) -> str:
        return f"{self.package_type.label} {self.stream} ({self.architecture})"

    def to_dict(self) -> dict[str, Any]:
        return {
            "stream": self.stream,
            "package_type": self.package_type.value,
            "architecture": self.architecture.value,
            "version": str(self.version),
            "uninstall_id": self.uninstall_id,
            "display_name": self.display_name,
            "install_location": self.install_location,
        }


@dataclass(frozen=True)
class InstallRequest:
    """An explicit fresh-install target."""

    stream: str
    package_type: PackageType = PackageType.RUNTIME
    architecture: Architecture = Architecture.X64

    @property
    def label(self) -> str:
        return f"{self.package_type.label} {self.stream} ({self.architecture})"


@dataclass(frozen=True)
class ReleaseAsset:
    """The installer resolved for (stream, package type, architecture)."""

    stream: str
    package_type: PackageType
    architecture: Architecture
    version: Version
    installer_url: str
    checksum_url: str
    name: str
    release_tag: str
    size: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "stream": self.stream,
            "package_type": self.package_type.value,
            "architecture": self.architecture.value,
            "version": str(self.version),
            "installer_url": self.installer_url,
            "checksum_url": self.checksum_url,
            "name": self.name,
            "release_tag": self.release_tag,
            "size": self.size,
        }


# ------------------------------------------------------------------
# Results
# ------------------------------------------------------------------


@dataclass
class FetchResult:
    """Outcome of a verified download."""

    path: Path | None = None
    checksum_path: Path | None = None
    size: int = 0
    elapsed_seconds: float = 0.0
    attempts: int = 0
    failure: FailureKind | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None and self.path is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": str(self.path) if self.path else None,
            "checksum_path": str(self.checksum_path) if self.checksum_path else None,
            "size": self.size,
            "elapsed_seconds": self.elapsed_seconds,
            "attempts": self.attempts,
            "failure": self.failure.value if self.failure else None,
            "error": self.error,
        }


class OutcomeStatus(StrEnum):
    """Per-target result of a pass."""

    UP_TO_DATE = "up_to_date"
    AVAILABLE = "available"
    UPDATED = "updated"
    INSTALLED = "installed"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class UpdateOutcome:
    """Result for one installation or install request."""

    target: str
    status: OutcomeStatus
    installed_version: str | None = None
    new_version: str | None = None
    reason: str | None = None
    failure: FailureKind | None = None
    restart_required: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "status": self.status.value,
            "installed_version": self.installed_version,
            "new_version": self.new_version,
            "reason": self.reason,
            "failure": self.failure.value if self.failure else None,
            "restart_required": self.restart_required,
        }


@dataclass
class UpdatePassResult:
    """Aggregate counts of an update pass."""

    updated: int = 0
    failed: int = 0
    up_to_date: int = 0
    skipped: int = 0
    available: int = 0
    outcomes: list[UpdateOutcome] = field(default_factory=list)

    @property
    def restart_required(self) -> bool:
        return any(o.restart_required for o in self.outcomes)

    def record(self, outcome: UpdateOutcome) -> None:
        self.outcomes.append(outcome)
        if outcome.status is OutcomeStatus.UPDATED:
            self.updated += 1
        elif outcome.status is OutcomeStatus.FAILED:
            self.failed += 1
        elif outcome.status is OutcomeStatus.UP_TO_DATE:
            self.up_to_date += 1
        elif outcome.status is OutcomeStatus.AVAILABLE:
            self.available += 1
        else:
            self.skipped += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "updated": self.updated,
            "failed": self.failed,
            "up_to_date": self.up_to_date,
            "skipped": self.skipped,
            "available": self.available,
            "restart_required": self.restart_required,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


@dataclass
class InstallPassResult:
    """Aggregate counts of an install pass."""

    succeeded: int = 0
    failed: int = 0
    outcomes: list[UpdateOutcome] = field(default_factory=list)

    @property
    def restart_required(self) -> bool:
        return any(o.restart_required for o in self.outcomes)

    def record(self, outcome: UpdateOutcome) -> None:
        self.outcomes.append(outcome)
        if outcome.status is OutcomeStatus.INSTALLED:
            self.succeeded += 1
        else:
            self.failed += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "succeeded": self.succeeded,
            "failed": self.failed,
            "restart_required": self.restart_required,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }
