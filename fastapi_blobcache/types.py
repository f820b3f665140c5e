"""Type definitions for FastAPI-BlobCache."""

from collections.abc import AsyncIterator
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from typing import Union

# Extension given to every temporary file; derived images are always JPEG
TEMP_SUFFIX = ".jpg"


@dataclass(frozen=True)
class CacheKey:
    """Logical coordinates of a cached resource.

    The fields are used, unmodified, as the relative path of the cache entry:
    ``<collection>/<identifier>[/<geometry>]/<filename>``.
    """

    collection: str
    identifier: str
    filename: str
    geometry: Optional[str] = None

    @property
    def original(self) -> "CacheKey":
        """The key of the unresized resource this key derives from."""
        if self.geometry is None:
            return self
        return CacheKey(self.collection, self.identifier, self.filename)

    def parts(self) -> tuple[str, ...]:
        if self.geometry is None:
            return (self.collection, self.identifier, self.filename)
        return (self.collection, self.identifier, self.geometry, self.filename)


@dataclass(frozen=True)
class GeometrySpec:
    """Target box of a derived image.

    Args:
        width: Target width in pixels (None = unconstrained)
        height: Target height in pixels (None = unconstrained)
        crop: True to fill the exact box and crop the overflow, False to fit
            inside the box without cropping or upscaling
    """

    width: Optional[int]
    height: Optional[int]
    crop: bool = False


@dataclass(frozen=True)
class UsageEvent:
    """Bytes delivered for a metered resource."""

    token: str
    byte_count: int
    timestamp: float


@dataclass
class BlobStream:
    """An open blob: its total length and the chunks that make it up."""

    size: int
    chunks: AsyncIterator[bytes]


@dataclass(frozen=True)
class Hit:
    """The canonical file for a key is already present."""

    path: Path


@dataclass(frozen=True)
class Miss:
    """The canonical file is absent; parent directories have been created.

    Args:
        original_path: Cache path of the unresized blob
        derived_path: Cache path of the resized variant (None without geometry)
        original_present: Whether ``original_path`` already exists
        temp_path: Private, unpredictable name for any write this request makes
    """

    original_path: Path
    derived_path: Optional[Path]
    original_present: bool
    temp_path: Path

    @property
    def path(self) -> Path:
        return self.derived_path if self.derived_path is not None else self.original_path


Resolution = Union[Hit, Miss]
