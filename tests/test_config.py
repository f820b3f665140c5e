from pathlib import Path

import pytest
from pydantic import ValidationError

from fastapi_blobcache.config import BlobCacheSettings


def test_settings_defaults(monkeypatch):
    for name in ("DATABASE_URL", "CACHE_DIR", "PORT", "BILLING_INTERVAL"):
        monkeypatch.delenv(name, raising=False)

    settings = BlobCacheSettings(_env_file=None)

    assert settings.database_url is None
    assert settings.cache_dir == Path("tmp")
    assert settings.port == 3000
    assert settings.billing_interval == 1.0
    assert settings.jpeg_quality == 90
    assert settings.media_type == "image/jpeg"


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgres://db/app")
    monkeypatch.setenv("CACHE_DIR", "/var/cache/images")
    monkeypatch.setenv("PORT", "8080")

    settings = BlobCacheSettings(_env_file=None)

    assert settings.database_url == "postgres://db/app"
    assert settings.cache_dir == Path("/var/cache/images")
    assert settings.port == 8080


def test_billing_interval_must_be_positive():
    with pytest.raises(ValidationError):
        BlobCacheSettings(_env_file=None, billing_interval=0)
