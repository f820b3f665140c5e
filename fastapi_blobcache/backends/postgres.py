from collections.abc import AsyncIterator
from collections.abc import Mapping
from contextlib import asynccontextmanager
from logging import getLogger
from typing import Optional

from sqlalchemy import text
from sqlalchemy.engine import URL
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.ext.asyncio import create_async_engine

from fastapi_blobcache.catalog import get_collection
from fastapi_blobcache.exceptions import BillingWriteFailedError
from fastapi_blobcache.exceptions import BlobNotFoundError
from fastapi_blobcache.types import BlobStream

from .base import BaseBlobBackend

logger = getLogger(__name__)

# libpq large object constants
INV_READ = 0x40000
SEEK_SET = 0
SEEK_END = 2


def normalize_database_url(url: str | URL) -> URL:
    """Point plain ``postgres://`` and ``postgresql://`` URLs at asyncpg."""
    parsed = make_url(url)
    if parsed.drivername in ("postgres", "postgresql"):
        parsed = parsed.set(drivername="postgresql+asyncpg")
    return parsed


def deduction_statement(count: int) -> str:
    """Build one UPDATE charging ``count`` tokens.

    Charges are summed per owning user first; ``UPDATE ... FROM`` applies
    at most one joined row to each target row.
    """
    values = ", ".join(
        f"(CAST(:token_{i} AS text), CAST(:amount_{i} AS bigint))"
        for i in range(count)
    )
    return (
        "UPDATE users SET balance = users.balance - charges.amount "
        "FROM ("
        "SELECT pictures.user_id, SUM(v.amount) AS amount "
        f"FROM (VALUES {values}) AS v(token, amount) "
        "JOIN pictures ON pictures.token = v.token "
        "GROUP BY pictures.user_id"
        ") AS charges "
        "WHERE users.id = charges.user_id"
    )


class PostgresBlobBackend(BaseBlobBackend):
    """Blob backend reading PostgreSQL large objects through SQLAlchemy."""

    def __init__(
        self,
        url: str | URL | None = None,
        chunk_size: int = 65536,
        pool_size: int = 10,
        engine: Optional[AsyncEngine] = None,
    ) -> None:
        if engine is None:
            if url is None:
                msg = "Either url or engine is required"
                raise ValueError(msg)
            engine = create_async_engine(
                normalize_database_url(url), pool_size=pool_size
            )
        self.engine = engine
        self.chunk_size = chunk_size

    @asynccontextmanager
    async def open_blob(
        self, collection: str, identifier: str, filename: str
    ) -> AsyncIterator[BlobStream]:
        entry = get_collection(collection)
        if entry is None:
            msg = f"Unknown collection: {collection}"
            raise BlobNotFoundError(msg)

        # The transaction stays open until the caller has drained the stream;
        # leaving the context rolls it back and returns the connection.
        async with self.engine.connect() as conn, conn.begin():
            result = await conn.execute(
                text(entry.lookup_sql),
                {"identifier": identifier, "filename": filename},
            )
            row = result.first()
            if row is None or row.oid is None:
                msg = f"No blob for {collection}/{identifier}/{filename}"
                raise BlobNotFoundError(msg)

            fd = await conn.scalar(
                text("SELECT lo_open(:oid, :mode)"),
                {"oid": row.oid, "mode": INV_READ},
            )
            size = await conn.scalar(
                text("SELECT lo_lseek64(:fd, 0, :whence)"),
                {"fd": fd, "whence": SEEK_END},
            )
            await conn.execute(
                text("SELECT lo_lseek64(:fd, 0, :whence)"),
                {"fd": fd, "whence": SEEK_SET},
            )
            yield BlobStream(size=int(size), chunks=self._read(conn, fd))

    async def _read(self, conn: AsyncConnection, fd: int) -> AsyncIterator[bytes]:
        while True:
            data = await conn.scalar(
                text("SELECT loread(:fd, :length)"),
                {"fd": fd, "length": self.chunk_size},
            )
            if not data:
                return
            yield bytes(data)

    async def deduct_balances(self, charges: Mapping[str, int]) -> None:
        if not charges:
            return

        params: dict[str, object] = {}
        for i, (token, total) in enumerate(charges.items()):
            params[f"token_{i}"] = token
            params[f"amount_{i}"] = total

        try:
            async with self.engine.begin() as conn:
                await conn.execute(text(deduction_statement(len(charges))), params)
        except SQLAlchemyError as exc:
            msg = f"Balance deduction failed for {len(charges)} token(s)"
            raise BillingWriteFailedError(msg) from exc

    async def close(self) -> None:
        logger.info("Disposing database engine")
        await self.engine.dispose()
