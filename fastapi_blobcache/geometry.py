"""Geometry tokens: ``<width>?x<height>?`` with an optional ``!`` for crop mode."""

import re
from typing import Optional

from starlette.convertors import Convertor

from fastapi_blobcache.exceptions import InvalidGeometryError
from fastapi_blobcache.types import GeometrySpec

GEOMETRY_REGEX = r"\d*x\d*!?"
GEOMETRY_PATTERN = re.compile(rf"^{GEOMETRY_REGEX}$")


def parse_geometry(token: str) -> GeometrySpec:
    """Parse a geometry token.

    Args:
        token: e.g. ``"300x"``, ``"x300"``, ``"300x200"`` or ``"300x200!"``

    Returns:
        The parsed GeometrySpec

    Raises:
        InvalidGeometryError: If the token does not match the grammar or
            constrains neither dimension
    """
    if not GEOMETRY_PATTERN.match(token):
        msg = f"Invalid geometry: {token!r}"
        raise InvalidGeometryError(msg)

    crop = token.endswith("!")
    if crop:
        token = token[:-1]

    width_str, height_str = token.split("x")
    width = _dimension(width_str)
    height = _dimension(height_str)

    if width is None and height is None:
        msg = f"Geometry selects no dimension: {token!r}"
        raise InvalidGeometryError(msg)

    return GeometrySpec(width=width, height=height, crop=crop)


def _dimension(value: str) -> Optional[int]:
    # An empty or zero dimension leaves that axis unconstrained
    if not value:
        return None
    return int(value) or None


class GeometryConvertor(Convertor):
    """Path convertor matching a geometry segment, kept as a string."""

    regex = GEOMETRY_REGEX

    def convert(self, value: str) -> str:
        return value

    def to_string(self, value: str) -> str:
        return value
