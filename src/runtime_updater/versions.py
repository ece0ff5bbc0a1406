"""Version parsing and ordering for runtime release streams.

Two incompatible encodings are in use:

* the legacy stream ("8") writes ``8u462b08``: major, update, build;
* modern streams (11 and later) write ``17.0.13+11`` or ``17.0.13_11``:
  major, minor, patch, build, optionally followed by more dotted parts.

The stream decides which encoding applies. Versions of different encodings
or different streams are never compared.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from runtime_updater.constants import LEGACY_STREAM
from runtime_updater.errors import VersionMismatchError, VersionParseError

_LEGACY_RE = re.compile(r"^(?P<major>\d+)u(?P<update>\d+)-?b(?P<build>\d+)$")
_MODERN_RE = re.compile(
    r"^(?P<major>\d+)\.(?P<minor>\d+)\.(?P<patch>\d+)[_+](?P<build>\d+)(?P<extra>(?:\.\d+)*)$"
)


class Comparison(Enum):
    """Result of comparing an installed version against an available one."""

    NEWER = "newer"
    SAME_OR_OLDER = "same_or_older"


@dataclass(frozen=True)
class LegacyVersion:
    """Stream-8 version: ``{major}u{update}b{build}``."""

    major: int
    update: int
    build: int

    def __str__(self) -> str:
        return f"{self.major}u{self.update}b{self.build:02d}"

    @property
    def install_dir_version(self) -> str:
        return f"{self.major}.0.{self.update}.{self.build}"


@dataclass(frozen=True)
class ModernVersion:
    """Stream 11+ version: ``{major}.{minor}.{patch}+{build}[.{extra}...]``."""

    major: int
    minor: int
    patch: int
    build: int
    extra: tuple[int, ...] = ()

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}+{self.build}"
        if self.extra:
            text += "".join(f".{part}" for part in self.extra)
        return text

    @property
    def components(self) -> tuple[int, ...]:
        return (self.major, self.minor, self.patch, self.build, *self.extra)

    @property
    def install_dir_version(self) -> str:
        return ".".join(str(part) for part in self.components)


Version = LegacyVersion | ModernVersion


def is_legacy_stream(stream: str) -> bool:
    """Return True if *stream* uses the legacy ``u``/``b`` encoding."""
    return stream.strip() == LEGACY_STREAM


def parse_version(raw: str, stream: str) -> Version:
    """Parse *raw* using the encoding of *stream*.

    Raises ``VersionParseError`` if the text does not match the stream's
    format or names a different major version.
    """
    text = raw.strip()
    try:
        expected_major = int(stream)
    except ValueError:
        raise VersionParseError(f"invalid stream identifier: {stream!r}") from None

    version: Version
    if is_legacy_stream(stream):
        m = _LEGACY_RE.match(text)
        if m is None:
            raise VersionParseError(f"not a legacy version string: {raw!r}")
        version = LegacyVersion(
            major=int(m.group("major")),
            update=int(m.group("update")),
            build=int(m.group("build")),
        )
    else:
        m = _MODERN_RE.match(text)
        if m is None:
            raise VersionParseError(f"not a modern version string: {raw!r}")
        extra = m.group("extra")
        version = ModernVersion(
            major=int(m.group("major")),
            minor=int(m.group("minor")),
            patch=int(m.group("patch")),
            build=int(m.group("build")),
            extra=tuple(int(part) for part in extra.split(".")[1:]) if extra else (),
        )

    if version.major != expected_major:
        raise VersionParseError(f"version {raw!r} does not belong to stream {stream}")
    return version


def compare_versions(installed: Version, available: Version, stream: str) -> Comparison:
    """Decide whether *available* is newer than *installed* within *stream*."""
    if is_legacy_stream(stream):
        if not (isinstance(installed, LegacyVersion) and isinstance(available, LegacyVersion)):
            raise VersionMismatchError(f"stream {stream} requires legacy versions")
        # Major is not compared: callers have already matched the stream.
        newer = (available.update, available.build) > (installed.update, installed.build)
        return Comparison.NEWER if newer else Comparison.SAME_OR_OLDER

    if not (isinstance(installed, ModernVersion) and isinstance(available, ModernVersion)):
        raise VersionMismatchError(f"stream {stream} requires modern versions")

    ours, theirs = installed.components, available.components
    for current, candidate in zip(ours, theirs):
        if candidate != current:
            return Comparison.NEWER if candidate > current else Comparison.SAME_OR_OLDER
    if len(theirs) > len(ours):
        return Comparison.NEWER
    return Comparison.SAME_OR_OLDER


def is_revision_update(installed: Version, available: Version) -> bool:
    """Return True for a legacy build-only change (same update number).

    The legacy installer cannot replace such a revision in place, so the
    installed copy has to be removed first.
    """
    return (
        isinstance(installed, LegacyVersion)
        and isinstance(available, LegacyVersion)
        and installed.update == available.update
        and installed.build != available.build
    )
