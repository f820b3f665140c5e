"""Per-key deduplication of in-flight work."""

import asyncio
from collections.abc import Awaitable
from collections.abc import Callable
from collections.abc import Hashable
from functools import partial
from logging import getLogger
from typing import Generic
from typing import TypeVar

logger = getLogger(__name__)

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """Run at most one task per key; concurrent callers share its outcome.

    The first caller for a key starts the work as a task and later callers
    await that same task. The task is shielded, so cancelling a waiting
    caller does not cancel the work, and the cache write it performs
    completes for everyone else.
    """

    def __init__(self) -> None:
        self._calls: dict[Hashable, asyncio.Task[T]] = {}

    def __len__(self) -> int:
        return len(self._calls)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._calls

    async def do(self, key: Hashable, func: Callable[[], Awaitable[T]]) -> T:
        task = self._calls.get(key)
        if task is None:
            task = asyncio.ensure_future(func())
            self._calls[key] = task
            task.add_done_callback(partial(self._forget, key))
        else:
            logger.debug("Joining in-flight work for %s", key)
        return await asyncio.shield(task)

    def _forget(self, key: Hashable, task: "asyncio.Task[T]") -> None:
        if self._calls.get(key) is task:
            del self._calls[key]
        # Retrieve the exception so an unawaited failure is not reported
        if not task.cancelled():
            task.exception()
