"""HTTP transport used by the release feed and the artifact fetcher.

Wraps a synchronous ``httpx.Client`` and reports every failure as a
``TransportError`` so callers only deal with one transport exception type.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx

from runtime_updater.constants import DOWNLOAD_CHUNK_SIZE
from runtime_updater.errors import TransportError
from runtime_updater.logging import get_logger

log = get_logger("runtime_updater.transport")


@dataclass(frozen=True)
class DownloadStats:
    """Size and wall time of a finished download."""

    size: int
    duration: float


class HttpTransport:
    """Read-only GET and streamed download over one ``httpx.Client``."""

    def __init__(self, client: httpx.Client, *, chunk_size: int = DOWNLOAD_CHUNK_SIZE) -> None:
        self._client = client
        self._chunk_size = chunk_size

    def get(self, url: str, headers: dict[str, str] | None = None) -> httpx.Response:
        """GET *url*, raising ``TransportError`` on network errors and non-2xx statuses."""
        try:
            resp = self._client.get(url, headers=headers, follow_redirects=True)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise TransportError(f"GET {url} returned HTTP {status}", status_code=status) from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"GET {url} failed: {exc}") from exc
        return resp

    def get_json(self, url: str, headers: dict[str, str] | None = None) -> Any:
        resp = self.get(url, headers=headers)
        try:
            return resp.json()
        except ValueError as exc:
            raise TransportError(f"GET {url} returned malformed JSON") from exc

    def download(self, url: str, destination: Path) -> DownloadStats:
        """Stream *url* into *destination*, removing the file on failure.

        Local write failures (disk full, access denied) are reported as
        ``TransportError`` too.
        """
        start = time.monotonic()
        size = 0
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            with self._client.stream("GET", url, follow_redirects=True) as resp:
                resp.raise_for_status()
                with destination.open("wb") as fh:
                    for chunk in resp.iter_bytes(self._chunk_size):
                        fh.write(chunk)
                        size += len(chunk)
        except httpx.HTTPStatusError as exc:
            destination.unlink(missing_ok=True)
            status = exc.response.status_code
            raise TransportError(
                f"download {url} returned HTTP {status}", status_code=status
            ) from exc
        except httpx.HTTPError as exc:
            destination.unlink(missing_ok=True)
            raise TransportError(f"download {url} failed: {exc}") from exc
        except OSError as exc:
            destination.unlink(missing_ok=True)
            raise TransportError(f"download {url} could not be written: {exc}") from exc

        duration = round(time.monotonic() - start, 3)
        log.debug("download_complete", url=url, size=size, duration=duration)
        return DownloadStats(size=size, duration=duration)
