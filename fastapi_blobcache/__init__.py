"""FastAPI-BlobCache: an on-disk image cache in front of a database blob store."""

from .app import create_app as create_app
from .billing import BillingAggregator as BillingAggregator
from .config import BlobCacheSettings as BlobCacheSettings
from .pipeline import ImageCache as ImageCache
from .routes import add_routes as add_routes
from .types import CacheKey as CacheKey

__all__ = [
    "BillingAggregator",
    "BlobCacheSettings",
    "CacheKey",
    "ImageCache",
    "add_routes",
    "create_app",
]
