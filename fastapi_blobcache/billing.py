"""Coalescing of usage events into periodic balance deductions.

Billing is best-effort metering, not a ledger of record: a batch whose write
fails is logged and dropped, never retried.
"""

import asyncio
import time
from collections.abc import Callable
from logging import getLogger
from typing import Optional

from fastapi_blobcache.backends import BaseBlobBackend
from fastapi_blobcache.types import UsageEvent

logger = getLogger(__name__)

DEFAULT_INTERVAL = 1.0


def coalesce(events: list[UsageEvent]) -> dict[str, int]:
    """Sum byte counts per token, in first-seen order."""
    totals: dict[str, int] = {}
    for event in events:
        totals[event.token] = totals.get(event.token, 0) + event.byte_count
    return totals


class BillingAggregator:
    """Owns the billing window and flushes it at most once per interval.

    ``record_usage`` appends to the pending list and makes sure a deferred
    check is scheduled. A check that finds the interval not yet elapsed
    reschedules itself, so every recorded event reaches a flush.
    """

    def __init__(
        self,
        backend: BaseBlobBackend,
        interval: float = DEFAULT_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.backend = backend
        self.interval = interval
        self.clock = clock
        self._pending: list[UsageEvent] = []
        self._last_flush = clock()
        self._check: Optional[asyncio.Task[None]] = None
        self._write_lock = asyncio.Lock()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def record_usage(self, token: str, byte_count: int) -> None:
        """Record bytes delivered for ``token``. Must run on the event loop."""
        self._pending.append(UsageEvent(token, byte_count, time.time()))
        self._schedule(self.interval)

    def _schedule(self, delay: float) -> None:
        if self._check is not None and not self._check.done():
            return
        self._check = asyncio.get_running_loop().create_task(
            self._deferred_check(delay)
        )

    async def _deferred_check(self, delay: float) -> None:
        await asyncio.sleep(delay)
        # Events arriving from here on schedule their own check
        self._check = None
        await self.flush()

    async def flush(self, force: bool = False) -> int:
        """Drain the window and charge it, if the interval has elapsed.

        Args:
            force: Flush regardless of the interval (used at shutdown)

        Returns:
            The number of tokens charged
        """
        if not self._pending:
            return 0

        elapsed = self.clock() - self._last_flush
        if not force and elapsed < self.interval:
            self._schedule(self.interval - elapsed)
            return 0

        # Drain and reset without yielding, so concurrent appends land in the
        # next window
        self._last_flush = self.clock()
        events, self._pending = self._pending, []
        charges = coalesce(events)

        logger.info(
            "Charging %d request(s) for %d token(s)", len(events), len(charges)
        )
        async with self._write_lock:
            try:
                await self.backend.deduct_balances(charges)
            except Exception:
                logger.exception(
                    "Error updating user balance; dropped %d byte(s) of usage",
                    sum(charges.values()),
                )
                return 0
        return len(charges)

    async def aclose(self) -> None:
        """Cancel the pending check and charge whatever is left."""
        if self._check is not None:
            self._check.cancel()
            self._check = None
        await self.flush(force=True)
