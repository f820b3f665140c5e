"""Mapping of cache keys to paths under the cache directory."""

import secrets
from logging import getLogger
from pathlib import Path
from typing import Optional

import aiofiles.os

from fastapi_blobcache.catalog import get_collection
from fastapi_blobcache.exceptions import BlobNotFoundError
from fastapi_blobcache.geometry import GEOMETRY_PATTERN
from fastapi_blobcache.types import TEMP_SUFFIX
from fastapi_blobcache.types import CacheKey
from fastapi_blobcache.types import Hit
from fastapi_blobcache.types import Miss
from fastapi_blobcache.types import Resolution

logger = getLogger(__name__)


def validate_key(key: CacheKey) -> None:
    """Reject keys whose parts would not map one-to-one onto a path.

    Unknown collections are rejected before any directory is created. A
    filename that is itself a geometry token would collide with the
    directory holding that geometry's derived variants.

    Raises:
        BlobNotFoundError: If the key cannot name a cache entry
    """
    for part in (key.collection, key.identifier, key.filename):
        if part in ("", ".", "..") or "/" in part or "\\" in part or "\x00" in part:
            msg = f"Invalid path segment: {part!r}"
            raise BlobNotFoundError(msg)
    if get_collection(key.collection) is None:
        msg = f"Unknown collection: {key.collection!r}"
        raise BlobNotFoundError(msg)
    if GEOMETRY_PATTERN.match(key.filename):
        msg = f"Filename shadows a geometry: {key.filename!r}"
        raise BlobNotFoundError(msg)


class CachePathResolver:
    """Decides which cache files a request needs and whether they exist.

    The resolver only reports what is present. It never fetches or resizes.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def original_path(self, key: CacheKey) -> Path:
        return self.root.joinpath(*key.original.parts())

    def derived_path(self, key: CacheKey) -> Optional[Path]:
        if key.geometry is None:
            return None
        return self.root.joinpath(*key.parts())

    def temp_path(self) -> Path:
        """A fresh, unpredictable name beside the cache tree (same filesystem)."""
        return self.root / f"{secrets.token_hex(24)}{TEMP_SUFFIX}"

    async def resolve(self, key: CacheKey) -> Resolution:
        """Resolve a key to a Hit or a Miss.

        On a Miss the parent directory of the canonical path exists before
        this returns. Filesystem errors propagate to the caller.
        """
        validate_key(key)

        original = self.original_path(key)
        derived = self.derived_path(key)
        canonical = derived if derived is not None else original

        if await aiofiles.os.path.isfile(canonical):
            logger.debug("Cache hit: %s", canonical)
            return Hit(canonical)

        # Creates the original's directory too, derived paths nest below it
        await aiofiles.os.makedirs(canonical.parent, exist_ok=True)

        original_present = derived is not None and await aiofiles.os.path.isfile(
            original
        )
        logger.debug("Cache miss: %s (original present: %s)", canonical, original_present)
        return Miss(
            original_path=original,
            derived_path=derived,
            original_present=original_present,
            temp_path=self.temp_path(),
        )
