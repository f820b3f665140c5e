"""Tests for populating the original cache from the blob backend."""

import asyncio
from collections.abc import AsyncIterator
from pathlib import Path

import pytest

from fastapi_blobcache.backends.memory import MemoryBlobBackend
from fastapi_blobcache.exceptions import BlobNotFoundError
from fastapi_blobcache.exceptions import FetchFailedError
from fastapi_blobcache.fetcher import Fetcher
from fastapi_blobcache.resolver import CachePathResolver
from fastapi_blobcache.types import CacheKey

KEY = CacheKey("picture", "abc", "cat.jpg")
PAYLOAD = bytes(range(256)) * 40


class BrokenStreamBackend(MemoryBlobBackend):
    """Backend whose streams fail after the first chunk."""

    async def _chunks(self, data: bytes) -> AsyncIterator[bytes]:
        yield data[: self.chunk_size]
        msg = "connection reset"
        raise ConnectionResetError(msg)


class ShortStreamBackend(MemoryBlobBackend):
    """Backend whose streams end before the advertised size."""

    async def _chunks(self, data: bytes) -> AsyncIterator[bytes]:
        yield data[:10]


@pytest.fixture
def resolver(cache_dir: Path) -> CachePathResolver:
    return CachePathResolver(cache_dir)


async def prepare(resolver: CachePathResolver, key: CacheKey) -> tuple[Path, Path]:
    target = resolver.original_path(key)
    target.parent.mkdir(parents=True, exist_ok=True)
    return target, resolver.temp_path()


@pytest.mark.asyncio
async def test_fetch_copies_blob_bytes(
    memory_backend: MemoryBlobBackend, resolver: CachePathResolver
):
    memory_backend.add_blob("picture", "abc", "cat.jpg", PAYLOAD)
    fetcher = Fetcher(memory_backend)
    target, temp = await prepare(resolver, KEY)

    assert await fetcher.fetch(KEY, target, temp) == target

    assert target.read_bytes() == PAYLOAD
    assert not temp.exists()
    assert memory_backend.open_connections == 0


@pytest.mark.asyncio
async def test_missing_blob_raises_not_found(
    memory_backend: MemoryBlobBackend, resolver: CachePathResolver
):
    fetcher = Fetcher(memory_backend)
    target, temp = await prepare(resolver, KEY)

    with pytest.raises(BlobNotFoundError):
        await fetcher.fetch(KEY, target, temp)

    assert not target.exists()
    assert not temp.exists()
    assert memory_backend.open_connections == 0


@pytest.mark.asyncio
async def test_unknown_collection_raises_not_found(
    memory_backend: MemoryBlobBackend, resolver: CachePathResolver
):
    key = CacheKey("documents", "abc", "cat.jpg")
    fetcher = Fetcher(memory_backend)
    target, temp = await prepare(resolver, key)

    with pytest.raises(BlobNotFoundError):
        await fetcher.fetch(key, target, temp)


@pytest.mark.asyncio
async def test_stream_error_leaves_no_partial_file(
    resolver: CachePathResolver,
):
    backend = BrokenStreamBackend(chunk_size=64)
    backend.add_blob("picture", "abc", "cat.jpg", PAYLOAD)
    fetcher = Fetcher(backend)
    target, temp = await prepare(resolver, KEY)

    with pytest.raises(FetchFailedError) as exc_info:
        await fetcher.fetch(KEY, target, temp)

    assert isinstance(exc_info.value.__cause__, ConnectionResetError)
    assert not target.exists()
    assert not temp.exists()
    assert backend.open_connections == 0


@pytest.mark.asyncio
async def test_short_stream_is_a_fetch_failure(resolver: CachePathResolver):
    backend = ShortStreamBackend()
    backend.add_blob("picture", "abc", "cat.jpg", PAYLOAD)
    fetcher = Fetcher(backend)
    target, temp = await prepare(resolver, KEY)

    with pytest.raises(FetchFailedError, match="Short read"):
        await fetcher.fetch(KEY, target, temp)

    assert not target.exists()


@pytest.mark.asyncio
async def test_failed_fetch_can_be_retried(resolver: CachePathResolver):
    backend = BrokenStreamBackend(chunk_size=64)
    backend.add_blob("picture", "abc", "cat.jpg", PAYLOAD)
    fetcher = Fetcher(backend)
    target, temp = await prepare(resolver, KEY)

    with pytest.raises(FetchFailedError):
        await fetcher.fetch(KEY, target, temp)

    healthy = MemoryBlobBackend()
    healthy.add_blob("picture", "abc", "cat.jpg", PAYLOAD)
    fetcher.backend = healthy
    await fetcher.fetch(KEY, target, resolver.temp_path())

    assert target.read_bytes() == PAYLOAD


@pytest.mark.asyncio
async def test_concurrent_fetches_share_one_read(
    memory_backend: MemoryBlobBackend, resolver: CachePathResolver
):
    memory_backend.add_blob("picture", "abc", "cat.jpg", PAYLOAD)
    fetcher = Fetcher(memory_backend)
    target = resolver.original_path(KEY)
    target.parent.mkdir(parents=True)

    results = await asyncio.gather(
        *(fetcher.fetch(KEY, target, resolver.temp_path()) for _ in range(5))
    )

    assert results == [target] * 5
    assert fetcher.fetch_count == 1
    assert memory_backend.lookup_count == 1
    assert target.read_bytes() == PAYLOAD
    assert len(fetcher.flights) == 0


@pytest.mark.asyncio
async def test_concurrent_fetches_share_failure(resolver: CachePathResolver):
    backend = BrokenStreamBackend(chunk_size=64)
    backend.add_blob("picture", "abc", "cat.jpg", PAYLOAD)
    fetcher = Fetcher(backend)
    target = resolver.original_path(KEY)
    target.parent.mkdir(parents=True)

    results = await asyncio.gather(
        *(fetcher.fetch(KEY, target, resolver.temp_path()) for _ in range(3)),
        return_exceptions=True,
    )

    assert all(isinstance(result, FetchFailedError) for result in results)
    assert backend.lookup_count == 1
