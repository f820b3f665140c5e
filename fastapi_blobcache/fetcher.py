"""Population of the original cache from the blob backend."""

import contextlib
from logging import getLogger
from pathlib import Path
from typing import Optional

import aiofiles
import aiofiles.os

from fastapi_blobcache.backends import BaseBlobBackend
from fastapi_blobcache.exceptions import BlobNotFoundError
from fastapi_blobcache.exceptions import FetchFailedError
from fastapi_blobcache.singleflight import SingleFlight
from fastapi_blobcache.types import CacheKey

logger = getLogger(__name__)


async def discard(path: Path) -> None:
    """Remove a temporary file, ignoring one that was never created."""
    with contextlib.suppress(FileNotFoundError):
        await aiofiles.os.remove(path)


class Fetcher:
    """Copies blobs into the original cache, one fetch per key at a time."""

    def __init__(
        self,
        backend: BaseBlobBackend,
        flights: Optional[SingleFlight[Path]] = None,
    ) -> None:
        self.backend = backend
        self.flights: SingleFlight[Path] = flights or SingleFlight()
        self.fetch_count = 0

    async def fetch(self, key: CacheKey, target: Path, temp: Path) -> Path:
        """Populate ``target`` with the blob selected by ``key``.

        Concurrent calls for the same original share one fetch.

        Args:
            key: The requested key; its geometry is ignored
            target: The original cache path
            temp: Private path written before the rename onto ``target``

        Returns:
            The populated original path

        Raises:
            BlobNotFoundError: If no blob matches the key
            FetchFailedError: If reading, writing or renaming failed
        """
        original = key.original
        return await self.flights.do(
            original, lambda: self._fetch(original, target, temp)
        )

    async def _fetch(self, key: CacheKey, target: Path, temp: Path) -> Path:
        # A fetch for this key may have finished since the caller resolved it
        if await aiofiles.os.path.isfile(target):
            return target

        self.fetch_count += 1
        try:
            written = await self._copy(key, temp)
            await aiofiles.os.replace(temp, target)
        except (BlobNotFoundError, FetchFailedError):
            await discard(temp)
            raise
        except Exception as exc:
            await discard(temp)
            msg = f"Failed to fetch {'/'.join(key.parts())}"
            raise FetchFailedError(msg) from exc

        logger.info("Cached %s (%d bytes)", target, written)
        return target

    async def _copy(self, key: CacheKey, temp: Path) -> int:
        async with self.backend.open_blob(
            key.collection, key.identifier, key.filename
        ) as blob:
            written = 0
            async with aiofiles.open(temp, "wb") as f:
                async for chunk in blob.chunks:
                    await f.write(chunk)
                    written += len(chunk)

        if written != blob.size:
            msg = f"Short read: got {written} of {blob.size} bytes"
            raise FetchFailedError(msg)
        return written
