"""Application factory for the image cache server."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from logging import getLogger
from typing import Optional

from fastapi import FastAPI
from fastapi import Request
from fastapi.responses import HTMLResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.status import HTTP_404_NOT_FOUND
from starlette.status import HTTP_500_INTERNAL_SERVER_ERROR

from fastapi_blobcache.backends import BaseBlobBackend
from fastapi_blobcache.backends import PostgresBlobBackend
from fastapi_blobcache.billing import BillingAggregator
from fastapi_blobcache.config import BlobCacheSettings
from fastapi_blobcache.exceptions import BackendNotFoundError
from fastapi_blobcache.exceptions import BlobCacheError
from fastapi_blobcache.exceptions import BlobNotFoundError
from fastapi_blobcache.pipeline import ImageCache
from fastapi_blobcache.routes import add_routes

logger = getLogger(__name__)

DEFAULT_ERROR_PAGE = (
    "<!DOCTYPE html><html><head><title>Not available</title></head>"
    "<body><h1>This image is not available.</h1></body></html>"
)


def load_error_page(settings: BlobCacheSettings) -> str:
    if settings.error_page.is_file():
        return settings.error_page.read_text(encoding="utf-8")
    return DEFAULT_ERROR_PAGE


def create_backend(settings: BlobCacheSettings) -> BaseBlobBackend:
    """Create the PostgreSQL backend described by the settings.

    Raises:
        BackendNotFoundError: If no database URL is configured
    """
    if settings.database_url is None:
        msg = "DATABASE_URL environment variable must be set"
        raise BackendNotFoundError(msg)
    logger.info("Setting backend to: <%s>", PostgresBlobBackend.__name__)
    return PostgresBlobBackend(
        settings.database_url,
        chunk_size=settings.chunk_size,
        pool_size=settings.pool_size,
    )


def create_app(
    settings: Optional[BlobCacheSettings] = None,
    backend: Optional[BaseBlobBackend] = None,
) -> FastAPI:
    """Build the server.

    Args:
        settings: Server settings (default: read from the environment)
        backend: Blob backend to serve from (default: PostgreSQL from
            ``settings.database_url``)
    """
    settings = settings or BlobCacheSettings()
    backend = backend or create_backend(settings)
    error_page = load_error_page(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        settings.cache_dir.mkdir(parents=True, exist_ok=True)
        billing = BillingAggregator(backend, interval=settings.billing_interval)
        app.state.billing = billing
        app.state.image_cache = ImageCache(
            backend,
            settings.cache_dir,
            billing=billing,
            quality=settings.jpeg_quality,
            media_type=settings.media_type,
        )
        try:
            yield
        finally:
            await billing.aclose()
            await backend.close()

    app = FastAPI(lifespan=lifespan, openapi_url=None, docs_url=None, redoc_url=None)

    def error_response(status_code: int) -> HTMLResponse:
        return HTMLResponse(content=error_page, status_code=status_code)

    @app.exception_handler(BlobNotFoundError)
    async def not_found(request: Request, exc: BlobNotFoundError) -> HTMLResponse:
        logger.info("Not found: %s (%s)", request.url.path, exc)
        return error_response(HTTP_404_NOT_FOUND)

    @app.exception_handler(StarletteHTTPException)
    async def http_error(
        request: Request, exc: StarletteHTTPException
    ) -> HTMLResponse:
        return error_response(exc.status_code)

    @app.exception_handler(BlobCacheError)
    async def cache_error(request: Request, exc: BlobCacheError) -> HTMLResponse:
        logger.error("Failed to serve %s", request.url.path, exc_info=exc)
        return error_response(HTTP_500_INTERNAL_SERVER_ERROR)

    @app.exception_handler(Exception)
    async def server_error(request: Request, exc: Exception) -> HTMLResponse:
        logger.error("Unhandled error serving %s", request.url.path, exc_info=exc)
        return error_response(HTTP_500_INTERNAL_SERVER_ERROR)

    add_routes(app)

    if settings.static_dir.is_dir():
        app.mount("/", StaticFiles(directory=settings.static_dir), name="static")

    return app
