"""Command-line entry point for the runtime updater.

Two modes:

* ``update`` (default): update every detected installation in place
* ``install``: fresh install of the latest release of the given streams
"""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence
from pathlib import Path

import httpx

from runtime_updater import __version__
from runtime_updater.config import Settings, get_settings
from runtime_updater.constants import SUPPORTED_STREAMS
from runtime_updater.discovery import (
    Discovery,
    WindowsRegistryDiscovery,
    components_from_records,
)
from runtime_updater.fetcher import ArtifactFetcher
from runtime_updater.installer import InstallSupervisor, SubprocessInstallerRunner
from runtime_updater.logging import get_logger, setup_logging
from runtime_updater.models import Architecture, InstallRequest, PackageType
from runtime_updater.orchestrator import UpdateOrchestrator
from runtime_updater.processes import PsutilProcessInspector
from runtime_updater.resolver import ReleaseResolver, default_feed_urls
from runtime_updater.retry import RetryPolicy
from runtime_updater.transport import HttpTransport


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="runtime-updater",
        description="Keep installed Java runtimes on the latest release of their stream.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--keep-downloads",
        action="store_true",
        help="leave downloaded installers in the staging directory",
    )
    sub = parser.add_subparsers(dest="mode")

    update = sub.add_parser("update", help="update detected installations (default)")
    update.add_argument(
        "--check-only",
        action="store_true",
        help="report available updates without installing them",
    )

    install = sub.add_parser("install", help="install the latest release of given streams")
    install.add_argument(
        "--stream",
        dest="streams",
        action="append",
        required=True,
        choices=SUPPORTED_STREAMS,
        help="major stream to install (repeatable)",
    )
    install.add_argument(
        "--arch",
        type=Architecture,
        choices=list(Architecture),
        default=Architecture.X64,
    )
    install.add_argument(
        "--type",
        dest="package_type",
        type=PackageType.from_label,
        choices=list(PackageType),
        default=PackageType.RUNTIME,
    )
    return parser


def build_orchestrator(
    settings: Settings,
    client: httpx.Client,
    *,
    check_only: bool = False,
    keep_downloads: bool = False,
) -> UpdateOrchestrator:
    """Wire the pipeline components from settings."""
    transport = HttpTransport(client)
    token = settings.github_token.get_secret_value() if settings.github_token else None
    resolver = ReleaseResolver(
        transport,
        feed_urls=default_feed_urls(settings.feed_base_url),
        github_token=token,
    )
    fetcher = ArtifactFetcher(
        transport,
        Path(settings.staging_directory),
        RetryPolicy(
            max_attempts=settings.download_max_attempts,
            initial_delay=settings.download_initial_delay,
        ),
    )
    supervisor = InstallSupervisor(
        SubprocessInstallerRunner(),
        PsutilProcessInspector(),
        settings.installer_logs_path,
        settings.install_root,
        poll_interval=settings.process_poll_interval,
        wait_timeout=settings.process_wait_timeout,
    )
    return UpdateOrchestrator(
        resolver,
        fetcher,
        supervisor,
        keep_downloads=keep_downloads or settings.keep_downloads,
        check_only=check_only,
    )


def main(argv: Sequence[str] | None = None, discovery: Discovery | None = None) -> int:
    """Run one pass; returns the process exit status."""
    args = build_parser().parse_args(argv)
    setup_logging()
    log = get_logger("runtime_updater.main")
    settings = get_settings()
    mode = args.mode or "update"

    log.info("runtime_updater_starting", version=__version__, mode=mode)
    try:
        with httpx.Client(timeout=settings.http_timeout) as client:
            orchestrator = build_orchestrator(
                settings,
                client,
                check_only=getattr(args, "check_only", False),
                keep_downloads=args.keep_downloads,
            )
            if mode == "install":
                requests = [
                    InstallRequest(stream, args.package_type, args.arch) for stream in args.streams
                ]
                install_result = orchestrator.run_install_pass(requests)
                log.info(
                    "runtime_updater_finished",
                    mode=mode,
                    succeeded=install_result.succeeded,
                    failed=install_result.failed,
                )
            else:
                source = discovery or WindowsRegistryDiscovery()
                records = source.list_installed(settings.publisher_filter)
                components = components_from_records(records)
                if not components:
                    log.warning("no_installations_found", publisher=settings.publisher_filter)
                update_result = orchestrator.run_update_pass(components)
                log.info(
                    "runtime_updater_finished",
                    mode=mode,
                    updated=update_result.updated,
                    failed=update_result.failed,
                )
    except Exception:
        log.critical("runtime_updater_aborted", mode=mode, exc_info=True)
        return 1
    return 0


def run() -> None:
    """Run the application."""
    sys.exit(main())


if __name__ == "__main__":
    run()
