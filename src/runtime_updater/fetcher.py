"""Verified artifact download.

Downloads an installer plus its checksum file into the staging directory
and checks the installer's SHA-256 against the published value. Failed
attempts leave nothing behind; attempts are retried with exponential
backoff through ``retry_with_backoff``.
"""

from __future__ import annotations

import hashlib
import time
from collections.abc import Callable
from pathlib import Path

from runtime_updater.constants import CHECKSUM_SUFFIX
from runtime_updater.errors import IntegrityError, TransportError, UpdaterError
from runtime_updater.logging import get_logger
from runtime_updater.models import FetchResult
from runtime_updater.retry import RetryPolicy, retry_with_backoff
from runtime_updater.transport import HttpTransport

log = get_logger("runtime_updater.fetcher")


def parse_checksum_text(text: str) -> str:
    """Return the digest from checksum file text (its first token), lower-cased."""
    tokens = text.split()
    if not tokens:
        raise IntegrityError("checksum file is empty")
    return tokens[0].lower()


def file_digest(path: Path, algorithm: str = "sha256") -> str:
    """Hex digest of *path*, read in chunks."""
    digest = hashlib.new(algorithm)
    with path.open("rb") as fh:
        for chunk in iter(lambda: fh.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


class ArtifactFetcher:
    """Downloads installers with integrity verification and retry."""

    def __init__(
        self,
        transport: HttpTransport,
        staging_dir: Path,
        policy: RetryPolicy | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        algorithm: str = "sha256",
    ) -> None:
        self._transport = transport
        self._staging_dir = Path(staging_dir)
        self._policy = policy or RetryPolicy()
        self._sleep = sleep
        self._algorithm = algorithm

    @property
    def staging_dir(self) -> Path:
        return self._staging_dir

    def fetch_verified(
        self, installer_url: str, checksum_url: str, destination_name: str
    ) -> FetchResult:
        """Download and verify; never raises for transport or integrity problems.

        On success the installer and checksum file stay in the staging
        directory and belong to the caller.
        """
        installer_path = self._staging_dir / destination_name
        checksum_path = self._staging_dir / (destination_name + CHECKSUM_SUFFIX)
        start = time.monotonic()
        attempts = 0

        def attempt(number: int) -> int:
            nonlocal attempts
            attempts = number
            log.info(
                "fetch_attempt",
                asset=destination_name,
                attempt=number,
                max_attempts=self._policy.max_attempts,
            )
            try:
                return self._download_and_verify(
                    installer_url, checksum_url, installer_path, checksum_path
                )
            except UpdaterError:
                self._discard(installer_path, checksum_path)
                raise
            except OSError as exc:
                self._discard(installer_path, checksum_path)
                raise TransportError(f"staging {destination_name} failed: {exc}") from exc

        def on_retry(number: int, exc: BaseException, delay: float) -> None:
            log.warning(
                "fetch_attempt_failed",
                asset=destination_name,
                attempt=number,
                error=str(exc),
                retry_in=delay,
            )

        try:
            size = retry_with_backoff(
                attempt,
                self._policy,
                retry_on=(TransportError, IntegrityError),
                sleep=self._sleep,
                on_retry=on_retry,
            )
        except (TransportError, IntegrityError) as exc:
            self._discard(installer_path, checksum_path)
            log.error(
                "fetch_failed",
                asset=destination_name,
                attempts=attempts,
                failure=exc.kind.value,
                error=str(exc),
            )
            return FetchResult(
                attempts=attempts,
                elapsed_seconds=round(time.monotonic() - start, 3),
                failure=exc.kind,
                error=str(exc),
            )

        result = FetchResult(
            path=installer_path,
            checksum_path=checksum_path,
            size=size,
            elapsed_seconds=round(time.monotonic() - start, 3),
            attempts=attempts,
        )
        log.info(
            "fetch_verified",
            asset=destination_name,
            size=size,
            attempts=attempts,
            elapsed_seconds=result.elapsed_seconds,
        )
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _download_and_verify(
        self,
        installer_url: str,
        checksum_url: str,
        installer_path: Path,
        checksum_path: Path,
    ) -> int:
        stats = self._transport.download(installer_url, installer_path)
        self._transport.download(checksum_url, checksum_path)

        size = installer_path.stat().st_size
        if stats.size == 0 or size == 0:
            raise IntegrityError(f"{installer_path.name} downloaded as an empty file")

        expected = parse_checksum_text(checksum_path.read_text(encoding="utf-8", errors="replace"))
        actual = file_digest(installer_path, self._algorithm)
        if actual != expected:
            raise IntegrityError(
                f"{installer_path.name} checksum mismatch: expected {expected}, got {actual}"
            )
        return size

    @staticmethod
    def _discard(*paths: Path) -> None:
        for path in paths:
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                log.warning("fetch_cleanup_failed", path=str(path), error=str(exc))
