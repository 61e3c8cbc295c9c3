"""Conditional HTTP download of the static feed archive."""

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

import httpx

from transit_mcp.errors import FeedDownloadError
from transit_mcp.models.gtfs import FeedValidators

logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_BYTES = 1024 * 1024


@dataclass
class CheckResult:
    """Outcome of a conditional HEAD request."""

    needs_update: bool
    last_modified: str = ""
    etag: str = ""


class FeedDownloader:
    """Fetch the feed archive with conditional requests.

    No retries happen here; a failed check or download is retried by the
    scheduler at its next run.
    """

    def __init__(
        self,
        url: str,
        download_dir: Path,
        timeout: float = 300.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the downloader.

        Args:
            url: Feed archive URL.
            download_dir: Directory that receives the temporary zip.
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport (tests pass httpx.MockTransport).
        """
        self.url = url
        self.download_dir = Path(download_dir)
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._timeout, transport=self._transport, follow_redirects=True
        )

    async def check(self, last_modified: str = "", etag: str = "") -> CheckResult:
        """Ask the server whether the feed changed since the stored validators.

        Returns:
            CheckResult; needs_update is False on 304 Not Modified.

        Raises:
            FeedDownloadError: On network errors or any status other than 200 or 304.
        """
        headers: dict[str, str] = {}
        if last_modified:
            headers["If-Modified-Since"] = last_modified
        if etag:
            headers["If-None-Match"] = etag

        try:
            async with self._client() as client:
                response = await client.head(self.url, headers=headers)
        except httpx.HTTPError as e:
            raise FeedDownloadError(f"HEAD {self.url} failed: {e}") from e

        if response.status_code == 304:
            logger.info("Feed not modified")
            return CheckResult(needs_update=False, last_modified=last_modified, etag=etag)
        if response.status_code != 200:
            raise FeedDownloadError(
                f"HEAD {self.url} returned {response.status_code}",
                status_code=response.status_code,
            )

        return CheckResult(
            needs_update=True,
            last_modified=response.headers.get("Last-Modified", ""),
            etag=response.headers.get("ETag", ""),
        )

    async def download(self) -> tuple[Path, FeedValidators]:
        """Download the archive to a temporary file, streaming the body.

        The caller owns the returned file and should delete it when done.

        Returns:
            (path to the zip, validators from the response headers)

        Raises:
            FeedDownloadError: On network errors or a non-200 status.
        """
        self.download_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix="gtfs-", suffix=".zip", dir=self.download_dir)
        tmp_path = Path(tmp_name)
        written = 0

        logger.info(f"Downloading feed from {self.url}")
        try:
            with os.fdopen(fd, "wb") as out:
                async with self._client() as client:
                    async with client.stream("GET", self.url) as response:
                        if response.status_code != 200:
                            raise FeedDownloadError(
                                f"GET {self.url} returned {response.status_code}",
                                status_code=response.status_code,
                            )
                        async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_BYTES):
                            out.write(chunk)
                            written += len(chunk)
                        validators = FeedValidators(
                            last_modified=response.headers.get("Last-Modified", ""),
                            etag=response.headers.get("ETag", ""),
                        )
        except httpx.HTTPError as e:
            tmp_path.unlink(missing_ok=True)
            raise FeedDownloadError(f"GET {self.url} failed: {e}") from e
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise

        logger.info(f"Feed downloaded: {tmp_path.name} ({written / (1024 * 1024):.1f} MB)")
        return tmp_path, validators
