import asyncio
from collections.abc import AsyncIterator
from collections.abc import Mapping
from contextlib import asynccontextmanager

from fastapi_blobcache.catalog import get_collection
from fastapi_blobcache.exceptions import BlobNotFoundError
from fastapi_blobcache.types import BlobStream

from .base import BaseBlobBackend


class MemoryBlobBackend(BaseBlobBackend):
    """In-memory blob backend implementation.

    Blobs are keyed by ``(collection, identifier, filename)``. Token
    ownership and balances mirror the ``pictures``/``users`` relation.
    """

    def __init__(self, chunk_size: int = 65536) -> None:
        self.blobs: dict[tuple[str, str, str], bytes] = {}
        self.owners: dict[str, str] = {}
        self.balances: dict[str, int] = {}
        self.lock = asyncio.Lock()
        self.chunk_size = chunk_size
        self.lookup_count = 0
        self.open_connections = 0
        self.charge_batches: list[dict[str, int]] = []

    def add_blob(
        self,
        collection: str,
        identifier: str,
        filename: str,
        data: bytes,
        owner: str | None = None,
    ) -> None:
        self.blobs[(collection, identifier, filename)] = data
        if owner is not None:
            self.owners[identifier] = owner
            self.balances.setdefault(owner, 0)

    @asynccontextmanager
    async def open_blob(
        self, collection: str, identifier: str, filename: str
    ) -> AsyncIterator[BlobStream]:
        self.open_connections += 1
        try:
            async with self.lock:
                self.lookup_count += 1
                if get_collection(collection) is None:
                    msg = f"Unknown collection: {collection}"
                    raise BlobNotFoundError(msg)
                data = self.blobs.get((collection, identifier, filename))
            if data is None:
                msg = f"No blob for {collection}/{identifier}/{filename}"
                raise BlobNotFoundError(msg)
            yield BlobStream(size=len(data), chunks=self._chunks(data))
        finally:
            self.open_connections -= 1

    async def _chunks(self, data: bytes) -> AsyncIterator[bytes]:
        for offset in range(0, len(data), self.chunk_size):
            # Yield to the loop between chunks like a real network read
            await asyncio.sleep(0)
            yield data[offset : offset + self.chunk_size]

    async def deduct_balances(self, charges: Mapping[str, int]) -> None:
        async with self.lock:
            self.charge_batches.append(dict(charges))
            for token, total in charges.items():
                owner = self.owners.get(token)
                if owner is not None:
                    self.balances[owner] -= total
