"""Reading cache entries into responses and metering them."""

from pathlib import Path
from typing import Optional

import aiofiles
from fastapi import Response

from fastapi_blobcache.billing import BillingAggregator
from fastapi_blobcache.catalog import is_metered
from fastapi_blobcache.exceptions import ReadFailedError
from fastapi_blobcache.types import CacheKey

DEFAULT_MEDIA_TYPE = "image/jpeg"


class Delivery:
    """Turns present cache entries into image responses and meters them."""

    def __init__(
        self,
        billing: Optional[BillingAggregator] = None,
        media_type: str = DEFAULT_MEDIA_TYPE,
    ) -> None:
        self.billing = billing
        self.media_type = media_type

    async def read(self, path: Path) -> bytes:
        """Read a cache entry in full.

        Raises:
            ReadFailedError: If the file vanished or could not be read
        """
        try:
            async with aiofiles.open(path, "rb") as f:
                return await f.read()
        except OSError as exc:
            msg = f"Failed to read {path}"
            raise ReadFailedError(msg) from exc

    async def deliver(self, key: CacheKey, path: Path) -> Response:
        """Build the response for ``path`` and record its usage.

        Exactly one usage event is recorded per response from a metered
        collection, charged to the key's identifier.
        """
        data = await self.read(path)
        if self.billing is not None and is_metered(key.collection):
            self.billing.record_usage(key.identifier, len(data))

        # Starlette derives Content-Length from the body
        return Response(content=data, media_type=self.media_type)
