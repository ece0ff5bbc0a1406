"""Resolve the latest upstream installer for a release stream.

Each major stream has its own release feed (a GitHub "latest release"
endpoint). The installer asset is picked by name, its version is read from
the file name, and its ``.sha256.txt`` companion must exist for the release
to be installable.
"""

from __future__ import annotations

import re
import time
from collections.abc import Callable
from typing import Any

from runtime_updater.constants import (
    CHECKSUM_SUFFIX,
    FEED_REPOSITORY_TEMPLATE,
    GITHUB_ACCEPT_HEADER,
    INSTALLER_EXTENSION,
    SUPPORTED_STREAMS,
)
from runtime_updater.errors import (
    AmbiguousAssetError,
    ChecksumAssetMissingError,
    ReleaseNotFoundError,
    TransportError,
    VersionParseError,
)
from runtime_updater.logging import get_logger
from runtime_updater.models import Architecture, PackageType, ReleaseAsset
from runtime_updater.retry import RetryPolicy, retry_with_backoff
from runtime_updater.transport import HttpTransport
from runtime_updater.versions import Version, is_legacy_stream, parse_version

log = get_logger("runtime_updater.resolver")

DEFAULT_FEED_BASE_URL = "https://api.github.com/repos/adoptium"

_LEGACY_ASSET_VERSION_RE = re.compile(
    r"_(?P<version>\d+u\d+b\d+)" + re.escape(INSTALLER_EXTENSION) + r"$"
)
_MODERN_ASSET_VERSION_RE = re.compile(
    r"_(?P<version>\d+\.\d+\.\d+[_+]\d+(?:\.\d+)*)" + re.escape(INSTALLER_EXTENSION) + r"$"
)


def default_feed_urls(base_url: str = DEFAULT_FEED_BASE_URL) -> dict[str, str]:
    """Map every supported stream to its latest-release endpoint."""
    base = base_url.rstrip("/")
    return {
        stream: f"{base}/{FEED_REPOSITORY_TEMPLATE.format(stream=stream)}/releases/latest"
        for stream in SUPPORTED_STREAMS
    }


def installer_name_pattern(
    stream: str, package_type: PackageType, architecture: Architecture
) -> re.Pattern[str]:
    """Pattern matching the installer asset of one (stream, type, arch)."""
    prefix = f"OpenJDK{stream}U-{package_type.value}_{architecture.asset_token}_hotspot_"
    return re.compile(
        "^" + re.escape(prefix) + r".+" + re.escape(INSTALLER_EXTENSION) + "$"
    )


def extract_asset_version(asset_name: str, stream: str) -> Version:
    """Read the version embedded right before the installer extension."""
    pattern = _LEGACY_ASSET_VERSION_RE if is_legacy_stream(stream) else _MODERN_ASSET_VERSION_RE
    m = pattern.search(asset_name)
    if m is None:
        raise VersionParseError(f"no version found in asset name {asset_name!r}")
    return parse_version(m.group("version"), stream)


class ReleaseResolver:
    """Looks up the installer + checksum pair of the latest release.

    No retry happens here unless a ``retry_policy`` is given; transport
    failures surface as ``TransportError`` for the caller to handle.
    """

    def __init__(
        self,
        transport: HttpTransport,
        *,
        feed_urls: dict[str, str] | None = None,
        github_token: str | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._transport = transport
        self._feed_urls = feed_urls if feed_urls is not None else default_feed_urls()
        self._github_token = github_token
        self._retry_policy = retry_policy
        self._sleep = sleep or time.sleep

    def resolve(
        self, stream: str, package_type: PackageType, architecture: Architecture
    ) -> ReleaseAsset:
        """Return the installable asset for (stream, type, arch).

        Raises ``ReleaseNotFoundError`` (or a subclass) when nothing usable
        is published and ``TransportError`` when the feed is unreachable.
        """
        url = self._feed_urls.get(stream)
        if url is None:
            raise ReleaseNotFoundError(f"no release feed known for stream {stream!r}")

        release = self._fetch_release(url, stream)
        tag = str(release.get("tag_name", ""))
        assets = release.get("assets") or []
        if not isinstance(assets, list):
            raise TransportError(f"release feed for stream {stream} has malformed assets")

        pattern = installer_name_pattern(stream, package_type, architecture)
        matches = [
            a for a in assets if isinstance(a, dict) and pattern.match(str(a.get("name", "")))
        ]
        if not matches:
            raise ReleaseNotFoundError(
                f"release {tag or '?'} has no {package_type.label} {architecture} installer"
            )
        if len(matches) > 1:
            names = sorted(str(a["name"]) for a in matches)
            log.error("resolver_ambiguous_assets", stream=stream, tag=tag, candidates=names)
            raise AmbiguousAssetError(
                f"{len(matches)} installer assets match stream {stream} "
                f"{package_type.label} {architecture}",
                candidates=names,
            )

        installer = matches[0]
        name = str(installer["name"])
        version = extract_asset_version(name, stream)

        checksum_name = name + CHECKSUM_SUFFIX
        checksum = next(
            (a for a in assets if isinstance(a, dict) and a.get("name") == checksum_name),
            None,
        )
        if checksum is None:
            raise ChecksumAssetMissingError(f"release {tag} has no checksum asset {checksum_name}")

        asset = ReleaseAsset(
            stream=stream,
            package_type=package_type,
            architecture=architecture,
            version=version,
            installer_url=str(installer.get("browser_download_url", "")),
            checksum_url=str(checksum.get("browser_download_url", "")),
            name=name,
            release_tag=tag,
            size=int(installer.get("size") or 0),
        )
        if not asset.installer_url or not asset.checksum_url:
            raise ReleaseNotFoundError(f"release {tag} is missing download locations for {name}")

        log.debug("resolver_asset_found", stream=stream, asset=name, version=str(version))
        return asset

    # ------------------------------------------------------------------
    # Feed access
    # ------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": GITHUB_ACCEPT_HEADER}
        if self._github_token:
            headers["Authorization"] = f"Bearer {self._github_token}"
        return headers

    def _fetch_release(self, url: str, stream: str) -> dict[str, Any]:
        def attempt(number: int) -> Any:
            return self._transport.get_json(url, headers=self._headers())

        try:
            if self._retry_policy is None:
                data = attempt(1)
            else:
                data = retry_with_backoff(
                    attempt,
                    self._retry_policy,
                    retry_on=(TransportError,),
                    on_retry=lambda n, exc, delay: log.warning(
                        "resolver_feed_retry", stream=stream, attempt=n, delay=delay, error=str(exc)
                    ),
                    sleep=self._sleep,
                )
        except TransportError as exc:
            if exc.status_code == 404:
                raise ReleaseNotFoundError(f"no published release for stream {stream}") from exc
            raise

        if not isinstance(data, dict):
            raise TransportError(f"release feed for stream {stream} returned unexpected payload")
        return data
