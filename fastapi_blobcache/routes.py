"""Image routes."""

from fastapi import FastAPI
from fastapi import Response
from starlette.convertors import Convertor
from starlette.convertors import register_url_convertor

from fastapi_blobcache.catalog import COLLECTIONS
from fastapi_blobcache.dependencies import ImageCacheDep
from fastapi_blobcache.geometry import GeometryConvertor
from fastapi_blobcache.types import CacheKey


class CollectionConvertor(Convertor):
    """Path convertor matching only known collection names."""

    regex = "|".join(sorted(COLLECTIONS))

    def convert(self, value: str) -> str:
        return value

    def to_string(self, value: str) -> str:
        return value


register_url_convertor("collection", CollectionConvertor())
register_url_convertor("geometry", GeometryConvertor())


def add_routes(app: FastAPI) -> None:
    """Add the original and resized image routes to the app.

    Paths that match neither route fall through to routes added later,
    such as a static files mount.
    """

    @app.get(
        "/{collection:collection}/{identifier}/{filename}",
        response_class=Response,
        include_in_schema=False,
    )
    async def get_original(
        collection: str,
        identifier: str,
        filename: str,
        image_cache: ImageCacheDep,
    ) -> Response:
        return await image_cache.get(CacheKey(collection, identifier, filename))

    @app.get(
        "/{collection:collection}/{identifier}/{geometry:geometry}/{filename}",
        response_class=Response,
        include_in_schema=False,
    )
    async def get_resized(
        collection: str,
        identifier: str,
        geometry: str,
        filename: str,
        image_cache: ImageCacheDep,
    ) -> Response:
        return await image_cache.get(
            CacheKey(collection, identifier, filename, geometry)
        )
