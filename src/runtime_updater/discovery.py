"""Detection of locally installed runtimes.

Installed products are read from the Windows uninstall registry and turned
into ``InstalledComponent`` values by matching their display names, e.g.

* ``Eclipse Temurin JRE with Hotspot 8u462-b08 (x64)``
* ``Eclipse Temurin JDK with Hotspot 17.0.13+11 (x64)``
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Protocol

from runtime_updater.errors import VersionParseError
from runtime_updater.logging import get_logger
from runtime_updater.models import Architecture, InstalledComponent, PackageType
from runtime_updater.versions import parse_version

log = get_logger("runtime_updater.discovery")

_TYPE = r"\b(?P<type>JRE|JDK|Runtime|Development)\b"
_ARCH = r"\((?P<arch>x64|x86)\)\s*$"
_LEGACY_NAME_RE = re.compile(
    r"^.*?" + _TYPE + r".*?\b(?P<version>(?P<major>8)u\d+-?b\d+)\s+" + _ARCH,
    re.IGNORECASE,
)
_MODERN_NAME_RE = re.compile(
    r"^.*?" + _TYPE + r".*?\b(?P<version>(?P<major>\d+)\.\d+\.\d+[_+]\d+(?:\.\d+)*)\s+" + _ARCH,
    re.IGNORECASE,
)

_UNINSTALL_KEYS = (
    r"SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall",
    r"SOFTWARE\WOW6432Node\Microsoft\Windows\CurrentVersion\Uninstall",
)


@dataclass(frozen=True)
class RawInstallRecord:
    """One uninstall-registry entry as reported by discovery."""

    display_name: str
    version: str
    uninstall_id: str
    install_location: str = ""
    publisher: str = ""


class Discovery(Protocol):
    """Lists installed applications from a given publisher."""

    def list_installed(self, publisher_filter: str) -> list[RawInstallRecord]: ...


def parse_display_name(record: RawInstallRecord) -> InstalledComponent | None:
    """Derive an ``InstalledComponent`` from a record's display name.

    Returns None for products that are not runtime installations. Raises
    ``VersionParseError`` when the name looks like one but its version
    cannot be parsed.
    """
    m = _LEGACY_NAME_RE.match(record.display_name) or _MODERN_NAME_RE.match(
        record.display_name
    )
    if m is None:
        return None

    stream = str(int(m.group("major")))
    version = parse_version(m.group("version"), stream)
    return InstalledComponent(
        stream=stream,
        package_type=PackageType.from_label(m.group("type")),
        architecture=Architecture(m.group("arch").lower()),
        version=version,
        uninstall_id=record.uninstall_id,
        display_name=record.display_name,
        install_location=record.install_location,
    )


def components_from_records(records: Iterable[RawInstallRecord]) -> list[InstalledComponent]:
    """Keep the records that describe runtime installations."""
    components: list[InstalledComponent] = []
    for record in records:
        try:
            component = parse_display_name(record)
        except VersionParseError as exc:
            log.warning(
                "discovery_version_unparsed", display_name=record.display_name, error=str(exc)
            )
            continue
        if component is None:
            log.debug("discovery_record_ignored", display_name=record.display_name)
            continue
        components.append(component)
    log.info("discovery_complete", components=len(components))
    return components


class WindowsRegistryDiscovery:
    """Reads the 64- and 32-bit uninstall registry views via ``winreg``."""

    def __init__(self, hive: Any = None) -> None:
        self._hive = hive

    def list_installed(self, publisher_filter: str) -> list[RawInstallRecord]:
        try:
            import winreg
        except ImportError:
            log.warning("discovery_registry_unavailable")
            return []

        hive = self._hive if self._hive is not None else winreg.HKEY_LOCAL_MACHINE
        wanted = publisher_filter.lower()
        records: list[RawInstallRecord] = []
        seen: set[str] = set()
        for key_path in _UNINSTALL_KEYS:
            try:
                root = winreg.OpenKey(hive, key_path)
            except OSError:
                log.debug("discovery_key_missing", key=key_path)
                continue
            with root:
                subkey_count = winreg.QueryInfoKey(root)[0]
                for index in range(subkey_count):
                    try:
                        subkey_name = winreg.EnumKey(root, index)
                        with winreg.OpenKey(root, subkey_name) as subkey:
                            values = _read_values(winreg, subkey)
                    except OSError:
                        continue
                    publisher = values.get("Publisher", "")
                    display_name = values.get("DisplayName", "")
                    if not display_name or wanted not in publisher.lower():
                        continue
                    if subkey_name in seen:
                        continue
                    seen.add(subkey_name)
                    records.append(
                        RawInstallRecord(
                            display_name=display_name,
                            version=values.get("DisplayVersion", ""),
                            uninstall_id=subkey_name,
                            install_location=values.get("InstallLocation", ""),
                            publisher=publisher,
                        )
                    )
        log.debug("discovery_registry_scanned", records=len(records))
        return records


def _read_values(winreg: Any, key: Any) -> dict[str, str]:
    values: dict[str, str] = {}
    for name in ("DisplayName", "DisplayVersion", "Publisher", "InstallLocation"):
        try:
            value, _kind = winreg.QueryValueEx(key, name)
        except OSError:
            continue
        values[name] = str(value)
    return values
