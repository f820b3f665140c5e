from abc import ABC
from abc import abstractmethod
from collections.abc import Mapping
from contextlib import AbstractAsyncContextManager

from fastapi_blobcache.types import BlobStream


class BaseBlobBackend(ABC):
    """Base class for all blob backends."""

    @abstractmethod
    def open_blob(
        self, collection: str, identifier: str, filename: str
    ) -> AbstractAsyncContextManager[BlobStream]:
        """Open a streamed read of the blob selected by the coordinates.

        The returned context holds whatever connection the read needs and
        releases it on every exit path. Entering it raises
        BlobNotFoundError when no blob matches.
        """

    @abstractmethod
    async def deduct_balances(self, charges: Mapping[str, int]) -> None:
        """Subtract each token's byte total from its owner's balance."""

    async def close(self) -> None:
        """Release any pooled resources."""
