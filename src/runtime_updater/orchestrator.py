"""Top-level update and install passes.

Targets are processed one at a time: resolve the latest release, decide
whether it is newer, fetch and verify it, then hand it to the install
supervisor. A failure is recorded against its own target and the pass moves
on; counts are returned as a result object.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from pathlib import Path
from typing import TypeVar

from runtime_updater.errors import FailureKind, UpdaterError
from runtime_updater.fetcher import ArtifactFetcher
from runtime_updater.installer import InstallOutcome, InstallSupervisor
from runtime_updater.logging import get_logger
from runtime_updater.models import (
    FetchResult,
    InstalledComponent,
    InstallPassResult,
    InstallRequest,
    OutcomeStatus,
    ReleaseAsset,
    UpdateOutcome,
    UpdatePassResult,
)
from runtime_updater.resolver import ReleaseResolver
from runtime_updater.versions import Comparison, compare_versions

log = get_logger("runtime_updater.orchestrator")

T = TypeVar("T")


class UpdateOrchestrator:
    """Runs update and install passes over a sequence of targets."""

    def __init__(
        self,
        resolver: ReleaseResolver,
        fetcher: ArtifactFetcher,
        supervisor: InstallSupervisor,
        *,
        keep_downloads: bool = False,
        check_only: bool = False,
    ) -> None:
        self._resolver = resolver
        self._fetcher = fetcher
        self._supervisor = supervisor
        self._keep_downloads = keep_downloads
        self._check_only = check_only
        self._staged: list[Path] = []

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    def run_update_pass(self, components: Iterable[InstalledComponent]) -> UpdatePassResult:
        """Bring every detected component up to its stream's latest release."""
        result = UpdatePassResult()
        try:
            for component in components:
                outcome = self._guarded(component.label, self.update_component, component)
                result.record(outcome)
        finally:
            self.cleanup_staging()

        log.info(
            "update_pass_complete",
            updated=result.updated,
            failed=result.failed,
            up_to_date=result.up_to_date,
            skipped=result.skipped,
            available=result.available,
            restart_required=result.restart_required,
        )
        return result

    def run_install_pass(self, requests: Iterable[InstallRequest]) -> InstallPassResult:
        """Freshly install the latest release for each requested target."""
        result = InstallPassResult()
        try:
            for request in requests:
                outcome = self._guarded(request.label, self.install_release, request)
                result.record(outcome)
        finally:
            self.cleanup_staging()

        log.info(
            "install_pass_complete",
            succeeded=result.succeeded,
            failed=result.failed,
            restart_required=result.restart_required,
        )
        return result

    # ------------------------------------------------------------------
    # Per-target flows
    # ------------------------------------------------------------------

    def update_component(self, component: InstalledComponent) -> UpdateOutcome:
        """Update one installed component if a newer release exists."""
        installed = str(component.version)
        asset = self._resolver.resolve(
            component.stream, component.package_type, component.architecture
        )
        available = str(asset.version)
        comparison = compare_versions(component.version, asset.version, component.stream)

        if comparison is Comparison.SAME_OR_OLDER:
            log.info(
                "component_up_to_date",
                target=component.label,
                installed=installed,
                latest=available,
            )
            return UpdateOutcome(
                target=component.label,
                status=OutcomeStatus.UP_TO_DATE,
                installed_version=installed,
                new_version=available,
            )

        log.info(
            "component_update_available",
            target=component.label,
            installed=installed,
            latest=available,
            release=asset.release_tag,
        )
        if self._check_only:
            return UpdateOutcome(
                target=component.label,
                status=OutcomeStatus.AVAILABLE,
                installed_version=installed,
                new_version=available,
            )

        fetched = self._fetch(asset)
        if not fetched.ok:
            return self._fetch_failure(component.label, asset, fetched, installed)
        install = self._supervisor.install(asset, fetched.path, component)
        if not install.ok:
            return self._install_failure(component.label, asset, install, installed)

        log.info(
            "component_updated",
            target=component.label,
            previous=installed,
            version=available,
            restart_required=install.restart_required,
        )
        return UpdateOutcome(
            target=component.label,
            status=OutcomeStatus.UPDATED,
            installed_version=installed,
            new_version=available,
            restart_required=install.restart_required,
        )

    def install_release(self, request: InstallRequest) -> UpdateOutcome:
        """Install the latest release of one stream, ignoring what is installed."""
        asset = self._resolver.resolve(request.stream, request.package_type, request.architecture)
        log.info("install_release_resolved", target=request.label, version=str(asset.version))

        fetched = self._fetch(asset)
        if not fetched.ok:
            return self._fetch_failure(request.label, asset, fetched, None)
        install = self._supervisor.install(asset, fetched.path)
        if not install.ok:
            return self._install_failure(request.label, asset, install, None)

        log.info(
            "install_succeeded",
            target=request.label,
            version=str(asset.version),
            restart_required=install.restart_required,
        )
        return UpdateOutcome(
            target=request.label,
            status=OutcomeStatus.INSTALLED,
            new_version=str(asset.version),
            restart_required=install.restart_required,
        )

    # ------------------------------------------------------------------
    # Staging
    # ------------------------------------------------------------------

    def cleanup_staging(self) -> None:
        """Remove the files fetched during this pass unless asked to keep them."""
        if self._keep_downloads:
            if self._staged:
                log.info("staging_kept", files=[str(p) for p in self._staged])
            self._staged.clear()
            return
        for path in self._staged:
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                log.warning("staging_cleanup_failed", path=str(path), error=str(exc))
        self._staged.clear()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _fetch(self, asset: ReleaseAsset) -> FetchResult:
        fetched = self._fetcher.fetch_verified(asset.installer_url, asset.checksum_url, asset.name)
        if fetched.ok:
            self._staged.extend(p for p in (fetched.path, fetched.checksum_path) if p is not None)
        return fetched

    def _fetch_failure(
        self,
        target: str,
        asset: ReleaseAsset,
        fetched: FetchResult,
        installed: str | None,
    ) -> UpdateOutcome:
        reason = f"download failed after {fetched.attempts} attempt(s): {fetched.error}"
        log.error("target_failed", target=target, release=asset.release_tag, reason=reason)
        return UpdateOutcome(
            target=target,
            status=OutcomeStatus.FAILED,
            installed_version=installed,
            new_version=str(asset.version),
            reason=reason,
            failure=fetched.failure or FailureKind.UNEXPECTED,
        )

    def _install_failure(
        self,
        target: str,
        asset: ReleaseAsset,
        install: InstallOutcome,
        installed: str | None,
    ) -> UpdateOutcome:
        reason = f"{install.operation.value} exited with code {install.exit_code}"
        if install.log_excerpt:
            reason += f" ({install.log_excerpt[-1]})"
        log.error(
            "target_failed",
            target=target,
            release=asset.release_tag,
            reason=reason,
            log_path=str(install.log_path) if install.log_path else None,
        )
        return UpdateOutcome(
            target=target,
            status=OutcomeStatus.FAILED,
            installed_version=installed,
            new_version=str(asset.version),
            reason=reason,
            failure=FailureKind.INSTALLER,
        )

    def _guarded(self, target: str, flow: Callable[[T], UpdateOutcome], item: T) -> UpdateOutcome:
        """Run one per-target flow, converting every error into an outcome."""
        try:
            return flow(item)
        except UpdaterError as exc:
            if exc.kind is FailureKind.PARSE:
                log.warning("target_skipped", target=target, error=str(exc))
                return UpdateOutcome(
                    target=target, status=OutcomeStatus.SKIPPED, reason=str(exc), failure=exc.kind
                )
            log.error("target_failed", target=target, failure=exc.kind.value, error=str(exc))
            return UpdateOutcome(
                target=target, status=OutcomeStatus.FAILED, reason=str(exc), failure=exc.kind
            )
        except Exception as exc:
            log.exception("target_failed_unexpectedly", target=target)
            return UpdateOutcome(
                target=target,
                status=OutcomeStatus.FAILED,
                reason=f"Unexpected error: {exc}",
                failure=FailureKind.UNEXPECTED,
            )
