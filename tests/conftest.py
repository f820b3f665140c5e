import io
from pathlib import Path

import pytest
from PIL import Image

from fastapi_blobcache.backends.memory import MemoryBlobBackend
from fastapi_blobcache.pipeline import ImageCache


def make_jpeg(width: int, height: int, color: str = "red") -> bytes:
    """Encode a solid-colour JPEG of the given size."""
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="JPEG")
    return buffer.getvalue()


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    path = tmp_path / "cache"
    path.mkdir()
    return path


@pytest.fixture
def memory_backend() -> MemoryBlobBackend:
    # Small chunks so copies span several loop iterations
    return MemoryBlobBackend(chunk_size=1024)


@pytest.fixture
def image_cache(memory_backend: MemoryBlobBackend, cache_dir: Path) -> ImageCache:
    return ImageCache(memory_backend, cache_dir)


@pytest.fixture
def jpeg():
    """Factory fixture encoding solid-colour JPEGs."""
    return make_jpeg
