"""
Start coordinator - at most one bulk operation start in flight per process

The coordinator must be used from a single asyncio event loop. The check for
an in-flight start and the scheduling of a new one happen without a
suspension point in between, so two requests can never both decide to start.
There is no coordination across processes or instances.
"""
import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from errors import SuppressedStartError
from models import BulkOperation, DEFAULT_MIN_START_INTERVAL_MS

logger = logging.getLogger(__name__)


class StartCoordinator:
    """De-duplicates and rate limits bulk operation starts"""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self.last_start_ts: Optional[float] = None
        self._in_flight: Optional[asyncio.Task] = None

    @property
    def in_flight(self) -> bool:
        return self._in_flight is not None

    def too_soon(self, min_interval_ms: int) -> bool:
        """True if the last successful start was less than min_interval_ms ago"""
        if self.last_start_ts is None:
            return False
        return (self.clock() - self.last_start_ts) * 1000 < min_interval_ms

    async def request_start(
        self,
        start: Callable[[], Awaitable[BulkOperation]],
        *,
        force: bool = False,
        min_interval_ms: int = DEFAULT_MIN_START_INTERVAL_MS,
        status: Optional[str] = None,
    ) -> BulkOperation:
        """
        Start a bulk operation, or join the one already being started.

        Raises SuppressedStartError (carrying status) when not forced and the
        last start is within min_interval_ms. Errors from start() reach every
        waiter of that attempt.
        """
        if not force and self.too_soon(min_interval_ms):
            logger.info(f"start-suppressed status={status or 'PENDING'}")
            raise SuppressedStartError(status or 'PENDING', 'Start suppressed to protect rate limits')

        if self._in_flight is None:
            task = asyncio.ensure_future(self._run(start))
            task.add_done_callback(self._release)
            self._in_flight = task
        else:
            logger.info("Joining in-flight bulk operation start")

        # Shielded so a cancelled waiter doesn't cancel the start for everyone else
        return await asyncio.shield(self._in_flight)

    async def _run(self, start: Callable[[], Awaitable[BulkOperation]]) -> BulkOperation:
        operation = await start()
        self.last_start_ts = self.clock()
        return operation

    def _release(self, task: asyncio.Task):
        if self._in_flight is task:
            self._in_flight = None
        # Mark the exception retrieved; waiters already received it
        if not task.cancelled():
            task.exception()
