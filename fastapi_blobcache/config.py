"""Server configuration settings."""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings
from pydantic_settings import SettingsConfigDict


class BlobCacheSettings(BaseSettings):
    """Server configuration settings, read from the environment and ``.env``."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Blob store
    database_url: str | None = Field(
        default=None,
        description="Database URL; postgres:// URLs are served through asyncpg",
    )
    pool_size: int = Field(
        default=10, ge=1, description="Database connection pool size"
    )
    chunk_size: int = Field(
        default=65536,
        ge=1024,
        description="Bytes read from a large object per round trip",
    )

    # Cache
    cache_dir: Path = Field(default=Path("tmp"), description="Cache root directory")
    jpeg_quality: int = Field(
        default=90, ge=1, le=95, description="JPEG quality of resized images"
    )
    media_type: str = Field(
        default="image/jpeg", description="Content-Type of every image response"
    )

    # Billing
    billing_interval: float = Field(
        default=1.0,
        gt=0.0,
        description="Minimum seconds between two balance deduction batches",
    )

    # HTTP
    host: str = Field(default="0.0.0.0", description="Listen address")
    port: int = Field(default=3000, ge=1, le=65535, description="Listen port")
    static_dir: Path = Field(
        default=Path("public"), description="Directory of static assets"
    )
    error_page: Path = Field(
        default=Path("public/index.html"),
        description="HTML page rendered for 404 and 500 responses",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Root logging level"
    )
