"""Production of resized variants from cached originals."""

import asyncio
from logging import getLogger
from pathlib import Path
from typing import Optional

import aiofiles.os
from PIL import Image
from PIL import ImageFilter
from PIL import ImageOps

from fastapi_blobcache.exceptions import ResizeFailedError
from fastapi_blobcache.fetcher import discard
from fastapi_blobcache.geometry import parse_geometry
from fastapi_blobcache.singleflight import SingleFlight
from fastapi_blobcache.types import CacheKey
from fastapi_blobcache.types import GeometrySpec

logger = getLogger(__name__)

DEFAULT_QUALITY = 90
SHARPEN = ImageFilter.UnsharpMask(radius=1, percent=60, threshold=2)
# Largest output Pillow will decode without a bomb warning
MAX_OUTPUT_PIXELS = Image.MAX_IMAGE_PIXELS or 89_478_485


def fit_size(source: tuple[int, int], geometry: GeometrySpec) -> tuple[int, int]:
    """Largest size inside the geometry box keeping the source aspect ratio.

    Never larger than the source.
    """
    width, height = source
    scales = [1.0]
    if geometry.width is not None:
        scales.append(geometry.width / width)
    if geometry.height is not None:
        scales.append(geometry.height / height)
    scale = min(scales)
    return max(1, round(width * scale)), max(1, round(height * scale))


def crop_size(source: tuple[int, int], geometry: GeometrySpec) -> tuple[int, int]:
    """Exact output size in crop mode.

    With a single dimension the other follows the source aspect ratio.
    """
    width, height = source
    if geometry.width is not None and geometry.height is not None:
        return geometry.width, geometry.height
    if geometry.height is None:
        return geometry.width, max(1, round(height * geometry.width / width))
    return max(1, round(width * geometry.height / height)), geometry.height


def check_size(size: tuple[int, int], max_pixels: int) -> None:
    """Raise ResizeFailedError for an output larger than ``max_pixels``."""
    width, height = size
    if width * height > max_pixels:
        msg = f"Output of {width}x{height} exceeds {max_pixels} pixels"
        raise ResizeFailedError(msg)


def transform(
    image: Image.Image, geometry: GeometrySpec, max_pixels: int = MAX_OUTPUT_PIXELS
) -> Image.Image:
    if image.mode not in ("RGB", "L"):
        image = image.convert("RGB")

    if geometry.crop:
        size = crop_size(image.size, geometry)
        check_size(size, max_pixels)
        # Scales to cover the box, then trims the overflow around the centre
        image = ImageOps.fit(image, size, method=Image.Resampling.LANCZOS)
    else:
        size = fit_size(image.size, geometry)
        if size != image.size:
            image = image.resize(size, Image.Resampling.LANCZOS)

    return image.filter(SHARPEN)


def render(
    source: Path,
    destination: Path,
    geometry: GeometrySpec,
    quality: int,
    max_pixels: int = MAX_OUTPUT_PIXELS,
) -> None:
    """Decode ``source``, transform it, and write a JPEG to ``destination``."""
    with Image.open(source) as image:
        image.load()
        result = transform(image, geometry, max_pixels)
    result.save(destination, format="JPEG", quality=quality)


class Resizer:
    """Writes derived variants, one resize per key (geometry included) at a time."""

    def __init__(
        self,
        quality: int = DEFAULT_QUALITY,
        flights: Optional[SingleFlight[Path]] = None,
        max_pixels: int = MAX_OUTPUT_PIXELS,
    ) -> None:
        self.quality = quality
        self.max_pixels = max_pixels
        self.flights: SingleFlight[Path] = flights or SingleFlight()
        self.resize_count = 0

    async def resize(
        self, key: CacheKey, source: Path, target: Path, temp: Path
    ) -> Path:
        """Produce ``target`` from the already cached ``source``.

        Raises:
            ResizeFailedError: If the geometry is invalid, or the source cannot
                be decoded or re-encoded, or the output would exceed
                ``max_pixels``. ``target`` is not created.
        """
        if key.geometry is None:
            msg = f"No geometry in {'/'.join(key.parts())}"
            raise ResizeFailedError(msg)
        geometry = parse_geometry(key.geometry)
        # Fit mode is bounded by the source; crop mode by the requested box
        if (
            geometry.crop
            and geometry.width is not None
            and geometry.height is not None
        ):
            check_size((geometry.width, geometry.height), self.max_pixels)

        return await self.flights.do(
            key, lambda: self._resize(source, target, temp, geometry)
        )

    async def _resize(
        self, source: Path, target: Path, temp: Path, geometry: GeometrySpec
    ) -> Path:
        if await aiofiles.os.path.isfile(target):
            return target

        self.resize_count += 1
        try:
            await asyncio.to_thread(
                render, source, temp, geometry, self.quality, self.max_pixels
            )
            await aiofiles.os.replace(temp, target)
        except ResizeFailedError:
            await discard(temp)
            raise
        except (
            OSError,
            ValueError,
            MemoryError,
            Image.DecompressionBombError,
        ) as exc:
            await discard(temp)
            msg = f"Failed to resize {source}"
            raise ResizeFailedError(msg) from exc

        logger.info("Resized %s -> %s", source, target)
        return target
