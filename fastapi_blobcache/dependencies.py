from typing import Annotated

from fastapi import Depends
from fastapi import Request

from fastapi_blobcache.pipeline import ImageCache


def get_image_cache(request: Request) -> ImageCache:
    """Dependency returning the application's image cache."""
    return request.app.state.image_cache


ImageCacheDep = Annotated[ImageCache, Depends(get_image_cache)]
