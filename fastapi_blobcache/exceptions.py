class BlobCacheError(Exception):
    """Base class for all exceptions in FastAPI-BlobCache."""


class BackendNotFoundError(BlobCacheError):
    """Exception raised when no blob backend has been configured."""


class BlobNotFoundError(BlobCacheError):
    """Exception raised when no blob matches the requested coordinates."""


class FetchFailedError(BlobCacheError):
    """Exception raised when a blob could not be copied into the cache."""


class ResizeFailedError(BlobCacheError):
    """Exception raised when a derived image could not be produced."""


class InvalidGeometryError(ResizeFailedError):
    """Exception raised for a geometry token that selects no dimension."""


class ReadFailedError(BlobCacheError):
    """Exception raised when a cache entry vanished before it was read."""


class BillingWriteFailedError(BlobCacheError):
    """Exception raised when an aggregated balance deduction fails."""
