"""Blob backend implementations for FastAPI-BlobCache."""

from .base import BaseBlobBackend
from .memory import MemoryBlobBackend
from .postgres import PostgresBlobBackend

__all__ = [
    "BaseBlobBackend",
    "MemoryBlobBackend",
    "PostgresBlobBackend",
]
