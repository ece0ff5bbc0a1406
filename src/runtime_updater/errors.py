"""Error taxonomy shared by the update pipeline.

Every error here is contained to the single installation or install request
being processed; the orchestrator turns them into failed outcomes.
"""

from __future__ import annotations

from enum import StrEnum


class FailureKind(StrEnum):
    """Classification attached to failed results."""

    PARSE = "parse"
    NOT_FOUND = "not_found"
    TRANSPORT = "transport"
    INTEGRITY = "integrity"
    INSTALLER = "installer"
    PROCESS_WAIT = "process_wait"
    UNEXPECTED = "unexpected"


class UpdaterError(Exception):
    """Base class for classified update failures."""

    kind: FailureKind = FailureKind.UNEXPECTED


class VersionParseError(UpdaterError, ValueError):
    """Raised when a version string does not match its stream's format."""

    kind = FailureKind.PARSE


class VersionMismatchError(UpdaterError, ValueError):
    """Raised when two versions cannot be meaningfully compared."""

    kind = FailureKind.PARSE


class ReleaseNotFoundError(UpdaterError):
    """No usable release, installer asset, or checksum exists upstream."""

    kind = FailureKind.NOT_FOUND


class AmbiguousAssetError(ReleaseNotFoundError):
    """More than one installer asset matched the requested target."""

    def __init__(self, message: str, candidates: list[str]) -> None:
        super().__init__(message)
        self.candidates = candidates


class ChecksumAssetMissingError(ReleaseNotFoundError):
    """The release has an installer but no checksum companion."""


class TransportError(UpdaterError):
    """Network, timeout, or HTTP status failure."""

    kind = FailureKind.TRANSPORT

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class IntegrityError(UpdaterError):
    """Downloaded installer is empty or does not match its checksum."""

    kind = FailureKind.INTEGRITY


class ProcessWaitTimeoutError(UpdaterError):
    """In-use runtime processes outlasted the configured wait timeout."""

    kind = FailureKind.PROCESS_WAIT

    def __init__(self, message: str, pids: list[int]) -> None:
        super().__init__(message)
        self.pids = pids
