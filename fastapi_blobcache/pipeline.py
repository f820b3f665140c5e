"""Dispatch of a request through resolve, fetch, resize and delivery."""

from pathlib import Path
from typing import Optional

from fastapi import Response

from fastapi_blobcache.backends import BaseBlobBackend
from fastapi_blobcache.billing import BillingAggregator
from fastapi_blobcache.delivery import DEFAULT_MEDIA_TYPE
from fastapi_blobcache.delivery import Delivery
from fastapi_blobcache.fetcher import Fetcher
from fastapi_blobcache.resizer import DEFAULT_QUALITY
from fastapi_blobcache.resizer import Resizer
from fastapi_blobcache.resolver import CachePathResolver
from fastapi_blobcache.types import CacheKey
from fastapi_blobcache.types import Hit


class ImageCache:
    """The image cache: every stage in one place, run strictly in order."""

    def __init__(
        self,
        backend: BaseBlobBackend,
        cache_dir: str | Path,
        billing: Optional[BillingAggregator] = None,
        quality: int = DEFAULT_QUALITY,
        media_type: str = DEFAULT_MEDIA_TYPE,
    ) -> None:
        self.resolver = CachePathResolver(cache_dir)
        self.fetcher = Fetcher(backend)
        self.resizer = Resizer(quality=quality)
        self.delivery = Delivery(billing=billing, media_type=media_type)

    async def ensure(self, key: CacheKey) -> Path:
        """Make sure the canonical cache file for ``key`` is present.

        Returns:
            The canonical path, derived when the key has a geometry
        """
        resolution = await self.resolver.resolve(key)
        if isinstance(resolution, Hit):
            return resolution.path

        if not resolution.original_present:
            await self.fetcher.fetch(
                key, resolution.original_path, resolution.temp_path
            )

        if resolution.derived_path is None:
            return resolution.original_path

        return await self.resizer.resize(
            key,
            resolution.original_path,
            resolution.derived_path,
            resolution.temp_path,
        )

    async def get(self, key: CacheKey) -> Response:
        path = await self.ensure(key)
        return await self.delivery.deliver(key, path)
