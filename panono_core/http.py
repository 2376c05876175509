"""HTTP client for the Panono file endpoint.

UPF and preview URLs come from ``get_upf_infos``; the firmware upload URL
comes from ``get_status``. No correlation or session state is involved.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path

import aiohttp

from .errors import (
    PanonoConnectionError,
    PanonoFileError,
    PanonoResponseError,
    PanonoTimeout,
)

CHUNK_SIZE = 64 * 1024

ProgressCallback = Callable[[int, int | None], None]


class PanonoHttpClient:
    """HTTP client wrapper for the camera file endpoint."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        timeout: float = 60.0,
    ) -> None:
        self._session = session
        self._timeout = timeout

    def _client_timeout(self) -> aiohttp.ClientTimeout:
        # Large UPFs stream for minutes; bound the idle time, not the total.
        return aiohttp.ClientTimeout(total=None, sock_connect=10, sock_read=self._timeout)

    async def download(
        self,
        url: str,
        dest: Path,
        *,
        expected_size: int | None = None,
        progress: ProgressCallback | None = None,
    ) -> int:
        """Stream ``url`` into ``dest``.

        The body is written to ``dest`` with a ``.part`` suffix and renamed
        once complete, so an interrupted download never looks finished.

        Returns:
            Number of bytes written.
        """
        partial = dest.with_name(dest.name + ".part")
        received = 0
        try:
            async with self._session.get(url, timeout=self._client_timeout()) as resp:
                if resp.status != 200:
                    raise PanonoResponseError(
                        resp.status, f"Download of {url} failed with {resp.status}"
                    )
                total = resp.content_length or expected_size
                with partial.open("wb") as f:
                    async for chunk in resp.content.iter_chunked(CHUNK_SIZE):
                        f.write(chunk)
                        received += len(chunk)
                        if progress is not None:
                            progress(received, total)
        except TimeoutError as err:
            partial.unlink(missing_ok=True)
            raise PanonoTimeout(f"Download of {url} timed out") from err
        except aiohttp.ClientError as err:
            partial.unlink(missing_ok=True)
            raise PanonoConnectionError(f"Download of {url} failed") from err
        except PanonoResponseError:
            partial.unlink(missing_ok=True)
            raise
        except OSError as err:
            partial.unlink(missing_ok=True)
            raise PanonoFileError(f"Cannot write {dest}: {err}") from err

        try:
            os.replace(partial, dest)
        except OSError as err:
            raise PanonoFileError(f"Cannot write {dest}: {err}") from err
        return received

    async def fetch(self, url: str) -> bytes:
        """Fetch a small resource such as a preview image."""
        try:
            async with self._session.get(
                url,
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            ) as resp:
                if resp.status != 200:
                    raise PanonoResponseError(
                        resp.status, f"Fetch of {url} failed with {resp.status}"
                    )
                return await resp.read()
        except TimeoutError as err:
            raise PanonoTimeout(f"Fetch of {url} timed out") from err
        except aiohttp.ClientError as err:
            raise PanonoConnectionError(f"Fetch of {url} failed") from err

    async def upload_firmware(self, url: str, path: Path) -> int:
        """POST a firmware image to the camera.

        Returns:
            HTTP status of the accepted upload.
        """
        try:
            data = path.read_bytes()
        except OSError as err:
            raise PanonoFileError(f"Cannot read {path}: {err}") from err
        try:
            async with self._session.post(
                url,
                data=data,
                headers={"Content-Type": "application/octet-stream"},
                timeout=self._client_timeout(),
            ) as resp:
                if not 200 <= resp.status < 300:
                    raise PanonoResponseError(
                        resp.status, f"Firmware upload failed with {resp.status}"
                    )
                return resp.status
        except TimeoutError as err:
            raise PanonoTimeout("Firmware upload timed out") from err
        except aiohttp.ClientError as err:
            raise PanonoConnectionError("Firmware upload failed") from err
