"""Unit tests for UpdateOrchestrator."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from runtime_updater.errors import (
    FailureKind,
    ProcessWaitTimeoutError,
    ReleaseNotFoundError,
    TransportError,
    VersionMismatchError,
)
from runtime_updater.installer import InstallOutcome, InstallStatus, Operation
from runtime_updater.models import (
    Architecture,
    FetchResult,
    InstalledComponent,
    InstallRequest,
    OutcomeStatus,
    PackageType,
    ReleaseAsset,
)
from runtime_updater.orchestrator import UpdateOrchestrator
from runtime_updater.versions import LegacyVersion, ModernVersion, Version

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _component(version: Version, stream: str = "17", uninstall_id: str = "{ID}"):
    return InstalledComponent(
        stream=stream,
        package_type=PackageType.DEVELOPMENT,
        architecture=Architecture.X64,
        version=version,
        uninstall_id=uninstall_id,
        display_name=f"Eclipse Temurin JDK with Hotspot {version} (x64)",
    )


def _asset(version: Version, stream: str = "17") -> ReleaseAsset:
    return ReleaseAsset(
        stream=stream,
        package_type=PackageType.DEVELOPMENT,
        architecture=Architecture.X64,
        version=version,
        installer_url="https://dl.test/jdk.msi",
        checksum_url="https://dl.test/jdk.msi.sha256.txt",
        name="jdk.msi",
        release_tag="jdk-release",
    )


def _fetched(tmp_path: Path) -> FetchResult:
    installer = tmp_path / "jdk.msi"
    checksum = tmp_path / "jdk.msi.sha256.txt"
    installer.write_bytes(b"msi")
    checksum.write_text("abc")
    return FetchResult(path=installer, checksum_path=checksum, size=3, attempts=1)


def _installed(status: InstallStatus = InstallStatus.SUCCEEDED, code: int = 0) -> InstallOutcome:
    return InstallOutcome(operation=Operation.INSTALL, status=status, exit_code=code)


@pytest.fixture
def parts(tmp_path):
    resolver = MagicMock()
    fetcher = MagicMock()
    supervisor = MagicMock()
    resolver.resolve.return_value = _asset(ModernVersion(17, 0, 13, 11))
    fetcher.fetch_verified.return_value = _fetched(tmp_path)
    supervisor.install.return_value = _installed()
    return resolver, fetcher, supervisor


def _orchestrator(parts, **kwargs) -> UpdateOrchestrator:
    resolver, fetcher, supervisor = parts
    return UpdateOrchestrator(resolver, fetcher, supervisor, **kwargs)


# ---------------------------------------------------------------------------
# Update pass
# ---------------------------------------------------------------------------


class TestUpdatePass:
    """Tests for run_update_pass()."""

    def test_up_to_date_component_is_not_fetched(self, parts) -> None:
        resolver, fetcher, supervisor = parts
        result = _orchestrator(parts).run_update_pass([_component(ModernVersion(17, 0, 13, 11))])

        assert result.up_to_date == 1
        assert result.updated == 0
        fetcher.fetch_verified.assert_not_called()
        supervisor.install.assert_not_called()

    def test_newer_release_is_installed(self, parts, tmp_path) -> None:
        resolver, fetcher, supervisor = parts
        component = _component(ModernVersion(17, 0, 12, 7))

        result = _orchestrator(parts).run_update_pass([component])

        assert result.updated == 1
        outcome = result.outcomes[0]
        assert outcome.status is OutcomeStatus.UPDATED
        assert outcome.installed_version == "17.0.12+7"
        assert outcome.new_version == "17.0.13+11"
        resolver.resolve.assert_called_once_with("17", PackageType.DEVELOPMENT, Architecture.X64)
        fetcher.fetch_verified.assert_called_once_with(
            "https://dl.test/jdk.msi", "https://dl.test/jdk.msi.sha256.txt", "jdk.msi"
        )
        supervisor.install.assert_called_once_with(
            resolver.resolve.return_value, tmp_path / "jdk.msi", component
        )

    def test_staged_files_removed_after_pass(self, parts, tmp_path) -> None:
        _orchestrator(parts).run_update_pass([_component(ModernVersion(17, 0, 12, 7))])
        assert not (tmp_path / "jdk.msi").exists()
        assert not (tmp_path / "jdk.msi.sha256.txt").exists()

    def test_keep_downloads(self, parts, tmp_path) -> None:
        _orchestrator(parts, keep_downloads=True).run_update_pass(
            [_component(ModernVersion(17, 0, 12, 7))]
        )
        assert (tmp_path / "jdk.msi").exists()

    def test_check_only_reports_available(self, parts) -> None:
        _, fetcher, supervisor = parts
        result = _orchestrator(parts, check_only=True).run_update_pass(
            [_component(ModernVersion(17, 0, 12, 7))]
        )
        assert result.available == 1
        assert result.outcomes[0].status is OutcomeStatus.AVAILABLE
        fetcher.fetch_verified.assert_not_called()
        supervisor.install.assert_not_called()

    def test_restart_required_propagates(self, parts) -> None:
        _, _, supervisor = parts
        supervisor.install.return_value = _installed(InstallStatus.RESTART_REQUIRED, 3010)

        result = _orchestrator(parts).run_update_pass([_component(ModernVersion(17, 0, 12, 7))])

        assert result.updated == 1
        assert result.restart_required is True
        assert result.outcomes[0].restart_required is True

    def test_failures_are_isolated_per_target(self, parts) -> None:
        resolver, _, _ = parts
        resolver.resolve.side_effect = [
            ReleaseNotFoundError("no installer for JDK 17 (x86)"),
            _asset(ModernVersion(17, 0, 13, 11)),
        ]
        components = [
            _component(ModernVersion(17, 0, 12, 7), uninstall_id="{A}"),
            _component(ModernVersion(17, 0, 12, 7), uninstall_id="{B}"),
        ]

        result = _orchestrator(parts).run_update_pass(components)

        assert result.failed == 1
        assert result.updated == 1
        assert result.outcomes[0].failure is FailureKind.NOT_FOUND

    def test_transport_error_counts_as_failed(self, parts) -> None:
        resolver, _, _ = parts
        resolver.resolve.side_effect = TransportError("feed unreachable")

        result = _orchestrator(parts).run_update_pass([_component(ModernVersion(17, 0, 12, 7))])

        assert result.failed == 1
        assert result.outcomes[0].failure is FailureKind.TRANSPORT
        assert result.outcomes[0].reason == "feed unreachable"

    def test_parse_error_is_skipped(self, parts) -> None:
        resolver, _, _ = parts
        resolver.resolve.return_value = _asset(LegacyVersion(8, 462, 8), stream="8")

        # A modern version paired with a legacy release cannot be compared.
        result = _orchestrator(parts).run_update_pass(
            [_component(ModernVersion(8, 0, 462, 8), stream="8")]
        )

        assert result.skipped == 1
        assert result.failed == 0
        assert result.outcomes[0].status is OutcomeStatus.SKIPPED

    def test_mismatch_error_kind(self) -> None:
        assert VersionMismatchError("x").kind is FailureKind.PARSE

    def test_fetch_failure(self, parts) -> None:
        _, fetcher, supervisor = parts
        fetcher.fetch_verified.return_value = FetchResult(
            attempts=5, failure=FailureKind.INTEGRITY, error="checksum mismatch"
        )

        result = _orchestrator(parts).run_update_pass([_component(ModernVersion(17, 0, 12, 7))])

        outcome = result.outcomes[0]
        assert outcome.status is OutcomeStatus.FAILED
        assert outcome.failure is FailureKind.INTEGRITY
        assert "5 attempt(s)" in outcome.reason
        supervisor.install.assert_not_called()

    def test_installer_failure(self, parts) -> None:
        _, _, supervisor = parts
        outcome = _installed(InstallStatus.FAILED, 1603)
        outcome.log_excerpt = ["Error 1722: custom action failed"]
        supervisor.install.return_value = outcome

        result = _orchestrator(parts).run_update_pass([_component(ModernVersion(17, 0, 12, 7))])

        failed = result.outcomes[0]
        assert failed.failure is FailureKind.INSTALLER
        assert failed.reason == "install exited with code 1603 (Error 1722: custom action failed)"

    def test_process_wait_timeout(self, parts) -> None:
        _, _, supervisor = parts
        supervisor.install.side_effect = ProcessWaitTimeoutError("in use", pids=[4])

        result = _orchestrator(parts).run_update_pass([_component(ModernVersion(17, 0, 12, 7))])

        assert result.outcomes[0].failure is FailureKind.PROCESS_WAIT

    def test_unexpected_error_does_not_abort_pass(self, parts) -> None:
        resolver, _, _ = parts
        resolver.resolve.side_effect = [RuntimeError("boom"), _asset(ModernVersion(17, 0, 13, 11))]
        components = [_component(ModernVersion(17, 0, 12, 7)) for _ in range(2)]

        result = _orchestrator(parts).run_update_pass(components)

        assert result.failed == 1
        assert result.updated == 1
        assert result.outcomes[0].failure is FailureKind.UNEXPECTED
        assert result.outcomes[0].reason == "Unexpected error: boom"

    def test_empty_pass(self, parts) -> None:
        result = _orchestrator(parts).run_update_pass([])
        assert result.to_dict()["outcomes"] == []
        assert result.updated == result.failed == 0


# ---------------------------------------------------------------------------
# Install pass
# ---------------------------------------------------------------------------


class TestInstallPass:
    """Tests for run_install_pass()."""

    def test_fresh_install(self, parts, tmp_path) -> None:
        resolver, _, supervisor = parts
        request = InstallRequest("17", PackageType.DEVELOPMENT, Architecture.X64)

        result = _orchestrator(parts).run_install_pass([request])

        assert result.succeeded == 1
        assert result.outcomes[0].status is OutcomeStatus.INSTALLED
        supervisor.install.assert_called_once_with(
            resolver.resolve.return_value, tmp_path / "jdk.msi"
        )

    def test_failures_counted(self, parts) -> None:
        resolver, _, _ = parts
        resolver.resolve.side_effect = [
            ReleaseNotFoundError("none"),
            _asset(ModernVersion(17, 0, 13, 11)),
        ]
        requests = [InstallRequest("21"), InstallRequest("17", PackageType.DEVELOPMENT)]

        result = _orchestrator(parts).run_install_pass(requests)

        assert result.succeeded == 1
        assert result.failed == 1
