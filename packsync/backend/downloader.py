"""HTTP access for the local backend: manifest fetches and file downloads."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

import httpx

from ..exceptions import DownloadError, ManifestFetchError, NetworkError
from ..manifest import ManifestFile
from ..utils import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_DELAY,
    DEFAULT_TIMEOUT,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass
class DownloadResult:
    """Result of a single file download."""

    file: ManifestFile
    path: Path
    bytes_downloaded: int = 0
    attempts: int = 1


class FileDownloader:
    """Async HTTP client with retry logic.

    Transient failures (network errors, 429 and 5xx responses) are retried
    with exponential backoff; other HTTP errors fail immediately.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        max_attempts: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        timeout: float = DEFAULT_TIMEOUT,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        """Initialize the downloader.

        Args:
            client: Optional preconfigured client (used by tests)
            max_attempts: Attempts per file before giving up (default: 3)
            retry_delay: Initial delay between attempts in seconds
            timeout: Request timeout in seconds
            chunk_size: Streaming chunk size in bytes
        """
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.chunk_size = chunk_size
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
            )
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close the client if this downloader created it."""
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> FileDownloader:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _should_retry(self, exception: Exception, attempt: int) -> bool:
        """Determine if a request should be retried.

        Args:
            exception: The exception that occurred
            attempt: Current attempt number (0-based)

        Returns:
            True if the request should be retried, False otherwise
        """
        if attempt + 1 >= self.max_attempts:
            return False

        if isinstance(exception, httpx.TransportError):
            return True

        if isinstance(exception, httpx.HTTPStatusError):
            status_code = exception.response.status_code
            return status_code == 429 or 500 <= status_code < 600

        return False

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Calculate delay before next retry using exponential backoff.

        Args:
            attempt: Current attempt number (0-based)

        Returns:
            Delay in seconds
        """
        base_delay = self.retry_delay * (2**attempt)
        # Jitter of +/- 25%
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return base_delay + jitter

    async def fetch_text(self, url: str) -> str:
        """Fetch a text document, retrying transient failures.

        Raises:
            ManifestFetchError: If the server answers with an error status
            NetworkError: If the server cannot be reached
        """
        client = self._get_client()
        for attempt in range(self.max_attempts):
            try:
                response = await client.get(url)
                response.raise_for_status()
                return response.text
            except httpx.HTTPStatusError as e:
                if self._should_retry(e, attempt):
                    await asyncio.sleep(self._calculate_retry_delay(attempt))
                    continue
                status_code = e.response.status_code
                raise ManifestFetchError(
                    f"Failed to fetch {url}: HTTP {status_code}", status_code
                ) from e
            except httpx.RequestError as e:
                if self._should_retry(e, attempt):
                    await asyncio.sleep(self._calculate_retry_delay(attempt))
                    continue
                raise NetworkError(f"Network error fetching {url}: {e}") from e
        raise NetworkError(f"Failed to fetch {url} after {self.max_attempts} attempts")

    async def _stream_to_file(
        self,
        url: str,
        destination: Path,
        progress_callback: ProgressCallback | None,
    ) -> int:
        client = self._get_client()
        bytes_downloaded = 0
        async with client.stream("GET", url) as response:
            response.raise_for_status()
            total_size = int(response.headers.get("Content-Length", 0) or 0)
            with open(destination, "wb") as f:
                async for chunk in response.aiter_bytes(chunk_size=self.chunk_size):
                    if not chunk:
                        continue
                    f.write(chunk)
                    bytes_downloaded += len(chunk)
                    if progress_callback:
                        progress_callback(bytes_downloaded, total_size)
        return bytes_downloaded

    async def download(
        self,
        file: ManifestFile,
        destination: Path,
        progress_callback: ProgressCallback | None = None,
    ) -> DownloadResult:
        """Download a manifest file, retrying transient failures.

        Args:
            file: Manifest entry to download
            destination: Local path to write
            progress_callback: Optional callback function(bytes_downloaded, total_bytes)

        Returns:
            DownloadResult for the file

        Raises:
            DownloadError: If every attempt failed
        """
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DownloadError(f"Failed to create directory for {file.name}: {e}") from e

        last_error: Exception | None = None
        for attempt in range(self.max_attempts):
            try:
                size = await self._stream_to_file(
                    file.download_url, destination, progress_callback
                )
                return DownloadResult(
                    file=file, path=destination, bytes_downloaded=size, attempts=attempt + 1
                )
            except (httpx.HTTPStatusError, httpx.RequestError) as e:
                last_error = e
                logger.warning(
                    f"Failed to download {file.name}: {e}. "
                    f"Attempt {attempt + 1}/{self.max_attempts}"
                )
                if self._should_retry(e, attempt):
                    await asyncio.sleep(self._calculate_retry_delay(attempt))
                    continue
                break
            except OSError as e:
                raise DownloadError(f"Failed to write {file.name}: {e}") from e

        raise DownloadError(f"Failed to download {file.name}: {last_error}") from last_error
