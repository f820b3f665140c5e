import logging

import uvicorn

from fastapi_blobcache.app import create_app
from fastapi_blobcache.config import BlobCacheSettings


def main() -> None:
    settings = BlobCacheSettings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        proxy_headers=True,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
