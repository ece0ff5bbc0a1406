"""Unit tests for ReleaseResolver."""

from __future__ import annotations

from typing import Any

import httpx
import pytest

from runtime_updater.errors import (
    AmbiguousAssetError,
    ChecksumAssetMissingError,
    ReleaseNotFoundError,
    TransportError,
    VersionParseError,
)
from runtime_updater.models import Architecture, PackageType
from runtime_updater.resolver import (
    ReleaseResolver,
    default_feed_urls,
    extract_asset_version,
    installer_name_pattern,
)
from runtime_updater.retry import RetryPolicy
from runtime_updater.transport import HttpTransport
from runtime_updater.versions import LegacyVersion, ModernVersion

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

JRE8_X64 = "OpenJDK8U-jre_x64_windows_hotspot_8u462b08.msi"
JDK17_X64 = "OpenJDK17U-jdk_x64_windows_hotspot_17.0.13_11.msi"


def _asset(name: str, size: int = 1024) -> dict[str, Any]:
    return {
        "name": name,
        "browser_download_url": f"https://github.com/adoptium/download/{name}",
        "size": size,
    }


def _release(tag: str, *names: str) -> dict[str, Any]:
    return {"tag_name": tag, "assets": [_asset(n) for n in names]}


def _with_checksums(*names: str) -> list[str]:
    out: list[str] = []
    for name in names:
        out.extend([name, name + ".sha256.txt"])
    return out


class _Feed:
    """MockTransport handler serving one payload and recording requests."""

    def __init__(self, payload: Any = None, status: int = 200) -> None:
        self.payload = payload
        self.status = status
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status != 200:
            return httpx.Response(self.status)
        return httpx.Response(200, json=self.payload)


def _resolver(feed: _Feed, **kwargs: Any) -> ReleaseResolver:
    client = httpx.Client(transport=httpx.MockTransport(feed))
    return ReleaseResolver(HttpTransport(client), **kwargs)


# ---------------------------------------------------------------------------
# Name helpers
# ---------------------------------------------------------------------------


class TestNameHelpers:
    """Tests for feed URLs, name patterns and version extraction."""

    def test_default_feed_urls(self) -> None:
        urls = default_feed_urls("https://api.github.com/repos/adoptium/")
        assert urls["17"] == (
            "https://api.github.com/repos/adoptium/temurin17-binaries/releases/latest"
        )
        assert set(urls) == {"8", "11", "17", "21", "25"}

    def test_pattern_x64(self) -> None:
        pattern = installer_name_pattern("17", PackageType.DEVELOPMENT, Architecture.X64)
        assert pattern.match(JDK17_X64)
        assert not pattern.match(JDK17_X64 + ".sha256.txt")
        assert not pattern.match("OpenJDK17U-jre_x64_windows_hotspot_17.0.13_11.msi")
        assert not pattern.match("OpenJDK17U-jdk_x64_windows_hotspot_17.0.13_11.zip")

    def test_pattern_x86_token(self) -> None:
        pattern = installer_name_pattern("8", PackageType.RUNTIME, Architecture.X86)
        assert pattern.match("OpenJDK8U-jre_x86-32_windows_hotspot_8u462b08.msi")
        assert not pattern.match(JRE8_X64)

    def test_extract_legacy(self) -> None:
        assert extract_asset_version(JRE8_X64, "8") == LegacyVersion(8, 462, 8)

    def test_extract_modern(self) -> None:
        assert extract_asset_version(JDK17_X64, "17") == ModernVersion(17, 0, 13, 11)
        name = "OpenJDK17U-jdk_x64_windows_hotspot_17.0.13+11.msi"
        assert extract_asset_version(name, "17") == ModernVersion(17, 0, 13, 11)

    def test_extract_missing_version(self) -> None:
        with pytest.raises(VersionParseError):
            extract_asset_version("OpenJDK17U-jdk_x64_windows_hotspot_latest.msi", "17")


# ---------------------------------------------------------------------------
# resolve()
# ---------------------------------------------------------------------------


class TestResolve:
    """Tests for ReleaseResolver.resolve()."""

    def test_resolves_legacy_asset(self) -> None:
        feed = _Feed(
            _release(
                "jdk8u462-b08",
                *_with_checksums(JRE8_X64, "OpenJDK8U-jdk_x64_windows_hotspot_8u462b08.msi"),
            )
        )
        asset = _resolver(feed).resolve("8", PackageType.RUNTIME, Architecture.X64)

        assert asset.name == JRE8_X64
        assert asset.version == LegacyVersion(8, 462, 8)
        assert asset.release_tag == "jdk8u462-b08"
        assert asset.installer_url.endswith(JRE8_X64)
        assert asset.checksum_url.endswith(JRE8_X64 + ".sha256.txt")
        assert asset.size == 1024
        assert asset.stream == "8"
        assert len(feed.requests) == 1
        assert feed.requests[0].url.path == "/repos/adoptium/temurin8-binaries/releases/latest"

    def test_resolves_modern_asset(self) -> None:
        feed = _Feed(_release("jdk-17.0.13+11", *_with_checksums(JDK17_X64)))
        asset = _resolver(feed).resolve("17", PackageType.DEVELOPMENT, Architecture.X64)
        assert asset.version == ModernVersion(17, 0, 13, 11)
        assert asset.package_type is PackageType.DEVELOPMENT

    def test_sends_token_and_accept_header(self) -> None:
        feed = _Feed(_release("jdk-17.0.13+11", *_with_checksums(JDK17_X64)))
        _resolver(feed, github_token="ghp_test").resolve(
            "17", PackageType.DEVELOPMENT, Architecture.X64
        )
        headers = feed.requests[0].headers
        assert headers["authorization"] == "Bearer ghp_test"
        assert headers["accept"] == "application/vnd.github+json"

    def test_unknown_stream_makes_no_request(self) -> None:
        feed = _Feed({})
        with pytest.raises(ReleaseNotFoundError):
            _resolver(feed).resolve("9", PackageType.RUNTIME, Architecture.X64)
        assert feed.requests == []

    def test_no_matching_installer(self) -> None:
        feed = _Feed(_release("jdk-17.0.13+11", *_with_checksums(JDK17_X64)))
        with pytest.raises(ReleaseNotFoundError):
            _resolver(feed).resolve("17", PackageType.RUNTIME, Architecture.X86)

    def test_ambiguous_match_is_flagged(self) -> None:
        other = "OpenJDK17U-jdk_x64_windows_hotspot_17.0.13_12.msi"
        feed = _Feed(_release("jdk-17.0.13+11", *_with_checksums(JDK17_X64, other)))
        with pytest.raises(AmbiguousAssetError) as exc_info:
            _resolver(feed).resolve("17", PackageType.DEVELOPMENT, Architecture.X64)
        assert exc_info.value.candidates == sorted([JDK17_X64, other])

    def test_missing_checksum(self) -> None:
        feed = _Feed(_release("jdk-17.0.13+11", JDK17_X64, JDK17_X64 + ".sig"))
        with pytest.raises(ChecksumAssetMissingError):
            _resolver(feed).resolve("17", PackageType.DEVELOPMENT, Architecture.X64)

    def test_checksum_requires_exact_name(self) -> None:
        feed = _Feed(_release("jdk-17.0.13+11", JDK17_X64, "x" + JDK17_X64 + ".sha256.txt"))
        with pytest.raises(ChecksumAssetMissingError):
            _resolver(feed).resolve("17", PackageType.DEVELOPMENT, Architecture.X64)

    def test_feed_404_is_not_found(self) -> None:
        with pytest.raises(ReleaseNotFoundError):
            _resolver(_Feed(status=404)).resolve("21", PackageType.RUNTIME, Architecture.X64)

    def test_feed_500_is_transport_error(self) -> None:
        feed = _Feed(status=500)
        with pytest.raises(TransportError):
            _resolver(feed).resolve("21", PackageType.RUNTIME, Architecture.X64)
        assert len(feed.requests) == 1

    def test_unexpected_payload(self) -> None:
        with pytest.raises(TransportError):
            _resolver(_Feed(["not", "a", "dict"])).resolve(
                "21", PackageType.RUNTIME, Architecture.X64
            )

    def test_optional_retry_policy(self) -> None:
        feed = _Feed(status=502)
        sleeps: list[float] = []
        resolver = _resolver(
            feed, retry_policy=RetryPolicy(max_attempts=3, initial_delay=1.0), sleep=sleeps.append
        )
        with pytest.raises(TransportError):
            resolver.resolve("21", PackageType.RUNTIME, Architecture.X64)
        assert len(feed.requests) == 3
        assert sleeps == [1.0, 2.0]
