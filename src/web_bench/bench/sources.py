"""Population and denylist sources (HTTP or local file)."""

from __future__ import annotations

import gzip
import logging
import zlib
from pathlib import Path

import httpx

from web_bench.bench.errors import FatalSetupError
from web_bench.bench.models import Target
from web_bench.bench.sampling import parse_denylist_hosts, parse_population_csv

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 60.0
DEFAULT_MAX_RETRIES = 3
_GZIP_MAGIC = b"\x1f\x8b"


class TextSource:
    """Loads a text document from an http(s) URL or a local path.

    Gzip payloads are decompressed transparently. Any failure is fatal for
    the run.
    """

    def __init__(
        self,
        location: str,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        client: httpx.Client | None = None,
    ) -> None:
        self.location = location
        self._timeout = httpx.Timeout(timeout_seconds, connect=10.0)
        self._max_retries = max_retries
        self._client = client

    def read_text(self) -> str:
        payload = self._read_bytes()
        if payload[:2] == _GZIP_MAGIC:
            try:
                payload = gzip.decompress(payload)
            except (OSError, EOFError, zlib.error) as error:
                raise FatalSetupError(f"Cannot decompress {self.location}: {error}") from error
        return payload.decode("utf-8", errors="replace")

    def _read_bytes(self) -> bytes:
        if not self.location.startswith(("http://", "https://")):
            try:
                return Path(self.location).read_bytes()
            except OSError as error:
                raise FatalSetupError(f"Cannot read {self.location}: {error}") from error

        try:
            if self._client is not None:
                response = self._client.get(self.location)
            else:
                with httpx.Client(
                    timeout=self._timeout,
                    transport=httpx.HTTPTransport(retries=self._max_retries),
                    follow_redirects=True,
                ) as client:
                    response = client.get(self.location)
        except httpx.HTTPError as error:
            raise FatalSetupError(f"Failed to fetch {self.location}: {error}") from error
        if not response.is_success:
            raise FatalSetupError(f"Failed to fetch {self.location}: HTTP {response.status_code}")
        return response.content


class PopulationSource:
    """Ranked origin list (CrUX top sites CSV)."""

    def __init__(self, source: TextSource) -> None:
        self.source = source

    def load(self) -> list[Target]:
        logger.info("Downloading population from %s", self.source.location)
        targets = parse_population_csv(self.source.read_text())
        if not targets:
            raise FatalSetupError(f"No origins parsed from {self.source.location}")
        logger.info("Loaded %d origins", len(targets))
        return targets


class DenylistSource:
    """Blocked domains from a hosts-format list."""

    def __init__(self, source: TextSource) -> None:
        self.source = source

    def load(self) -> frozenset[str]:
        logger.info("Downloading denylist from %s", self.source.location)
        domains = parse_denylist_hosts(self.source.read_text())
        if not domains:
            raise FatalSetupError(f"No blocked domains parsed from {self.source.location}")
        logger.info("Loaded %d blocked domains", len(domains))
        return domains
