"""
Handles the low-level downloading of setup files from signed URLs.
"""

import asyncio
import logging
import os
from pathlib import Path

import aiofiles
import aiohttp

log = logging.getLogger(__name__)

_connection_pool: aiohttp.ClientSession | None = None
_pool_lock = asyncio.Lock()


async def get_connection_pool() -> aiohttp.ClientSession:
    """
    Gets or creates the shared aiohttp ClientSession for file downloads.

    Signed URLs carry their own authorization, so this pool never sends the
    bearer header used for API calls.
    """
    global _connection_pool
    async with _pool_lock:
        if _connection_pool and not _connection_pool.closed:
            return _connection_pool

        connector = aiohttp.TCPConnector(
            limit=4,
            ttl_dns_cache=600,
            enable_cleanup_closed=True,
        )
        timeout = aiohttp.ClientTimeout(total=None, sock_connect=15, sock_read=60)
        _connection_pool = aiohttp.ClientSession(connector=connector, timeout=timeout)
        log.debug("Created download connection pool")

    return _connection_pool


async def close_connection_pool() -> None:
    """Closes the shared global connection pool."""
    global _connection_pool
    async with _pool_lock:
        if _connection_pool and not _connection_pool.closed:
            await _connection_pool.close()
            _connection_pool = None
            log.debug("Shared downloader connection pool closed.")


class FileDownloader:
    """A small file downloader with retry logic."""

    CHUNK_SIZE = 65536  # 64 KB, setup files are small

    def __init__(self, max_attempts: int = 3, base_delay: float = 1.5):
        self.max_attempts = max_attempts
        self.base_delay = base_delay

    async def download_file(self, url: str, destination_path: Path) -> int:
        """
        Streams a URL to a file, retrying transient failures.

        Returns:
            The number of bytes written.

        Raises:
            aiohttp.ClientError, asyncio.TimeoutError: After the last attempt.
        """
        last_exception: Exception | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                session = await get_connection_pool()
                async with session.get(url, allow_redirects=True) as response:
                    response.raise_for_status()

                    bytes_written = 0
                    async with aiofiles.open(destination_path, "wb") as f:
                        async for chunk in response.content.iter_chunked(
                            self.CHUNK_SIZE
                        ):
                            await f.write(chunk)
                            bytes_written += len(chunk)
                return bytes_written
            except aiohttp.ClientResponseError as e:
                last_exception = e
                # Expired or forbidden signed URLs do not recover by retrying
                if e.status in (401, 403, 404):
                    break
                self._log_retry(attempt, destination_path, e)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_exception = e
                self._log_retry(attempt, destination_path, e)

            if attempt < self.max_attempts:
                await asyncio.sleep(self.base_delay * (2 ** (attempt - 1)))

        await asyncio.to_thread(self._remove_partial, destination_path)
        if last_exception:
            raise last_exception
        return 0

    def _log_retry(self, attempt: int, destination_path: Path, error: Exception):
        log.debug(
            f"Download attempt {attempt}/{self.max_attempts} for "
            f"'{os.path.basename(destination_path)}' failed: {error}. Retrying..."
        )

    @staticmethod
    def _remove_partial(destination_path: Path) -> None:
        try:
            destination_path.unlink(missing_ok=True)
        except OSError as e:
            log.debug(f"Could not remove partial file '{destination_path}': {e}")
