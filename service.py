"""
Core order count services
"""
import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Dict, Optional

import config
from cache import ResultCache
from connectors.base import StoreConnector
from coordinator import StartCoordinator
from errors import OrderCountError, TerminalJobError, UpstreamTransportError, WaitTimeoutError
from models import (
    BulkOperation, CountRequest, CountResult,
    COMPLETED, RESTARTABLE, TERMINAL_FAILURES, UNKNOWN,
    SOURCE_CACHE, SOURCE_CURRENT, SOURCE_POLL,
)

logger = logging.getLogger(__name__)


class ExactOrderCountService:
    """Serves exact order counts from a Shopify bulk operation"""

    def __init__(
        self,
        connector: StoreConnector,
        cache: Optional[ResultCache] = None,
        coordinator: Optional[StartCoordinator] = None,
        poll_interval: Optional[float] = None,
    ):
        self.connector = connector
        self.cache = cache or ResultCache()
        self.coordinator = coordinator or StartCoordinator()
        self.poll_interval = config.POLL_INTERVAL if poll_interval is None else poll_interval

    async def get_exact_count(self, request: CountRequest) -> CountResult:
        """
        Decide per request between the current operation, the cache, a new
        start, an immediate status answer or polling until done.

        Raises SuppressedStartError and WaitTimeoutError (advisory),
        TerminalJobError, and UpstreamError subclasses.
        """
        now = datetime.now(timezone.utc)

        # Step 1: current operation, if completed recently enough
        operation = await self._current()
        if operation and operation.status == COMPLETED and not request.force \
                and operation.is_fresh(request.max_age_minutes, now):
            return self._completed(operation, SOURCE_CURRENT, now)

        # Step 2: memory cache
        if not request.force:
            cached = self.cache.get(request.max_age_minutes, now)
            if cached:
                age = cached.age_minutes(now)
                logger.info(f"status=COMPLETED source={SOURCE_CACHE} exactOrders={cached.exact_orders} "
                            f"ageMinutes={age:.2f}")
                return CountResult(
                    status=COMPLETED,
                    source=SOURCE_CACHE,
                    exact_orders=cached.exact_orders,
                    completed_at=cached.completed_at,
                    age_minutes=age,
                )

        # Step 3: start a new operation when there is nothing usable
        if self._needs_start(operation, request.force):
            await self.coordinator.request_start(
                lambda: self._start(request.query_filter),
                force=request.force,
                min_interval_ms=request.min_start_interval_ms,
                status=operation.status if operation else None,
            )
            operation = await self._current()

        # Step 4: answer immediately
        if not request.wait:
            return self._interim(operation)

        # Step 5: poll until done, failed or out of time
        return await self._poll(operation, request.max_wait_ms)

    @staticmethod
    def _needs_start(operation: Optional[BulkOperation], force: bool) -> bool:
        if operation is None:
            return True
        if operation.status in RESTARTABLE:
            return True
        return operation.status == COMPLETED and force

    async def _current(self) -> Optional[BulkOperation]:
        return await asyncio.to_thread(self.connector.get_current_bulk_operation)

    async def _start(self, query_filter: Optional[str]) -> BulkOperation:
        return await asyncio.to_thread(self.connector.start_bulk_operation, query_filter)

    def _completed(self, operation: BulkOperation, source: str, now: Optional[datetime] = None) -> CountResult:
        exact = operation.object_count or 0
        finished_at = operation.finished_at or datetime.now(timezone.utc)
        self.cache.put(exact, finished_at)

        age = operation.age_minutes(now)
        if age is not None:
            logger.info(f"status=COMPLETED source={source} exactOrders={exact} ageMinutes={age:.2f}")
        else:
            logger.info(f"status=COMPLETED source={source} exactOrders={exact}")

        return CountResult(
            status=COMPLETED,
            source=source,
            exact_orders=exact,
            completed_at=finished_at,
            age_minutes=age,
        )

    @staticmethod
    def _interim(operation: Optional[BulkOperation]) -> CountResult:
        status = operation.status if operation else UNKNOWN
        object_count = operation.object_count if operation else None

        if object_count is not None:
            logger.info(f"immediate status={status} objectCount={object_count}")
        else:
            logger.info(f"immediate status={status}")

        return CountResult(
            status=status,
            source=SOURCE_CURRENT,
            object_count=object_count,
            created_at=operation.created_at if operation else None,
            completed_at=operation.finished_at if operation and status == COMPLETED else None,
        )

    async def _poll(self, operation: Optional[BulkOperation], max_wait_ms: int) -> CountResult:
        budget = max_wait_ms / 1000
        started = time.monotonic()
        polls = 0

        while time.monotonic() - started < budget:
            operation = await self._current()
            polls += 1

            if operation and operation.status == COMPLETED:
                return self._completed(operation, SOURCE_POLL)

            if operation and operation.status in TERMINAL_FAILURES:
                logger.warning(f"Bulk operation {operation.id} ended status={operation.status} "
                               f"errorCode={operation.error_code}")
                raise TerminalJobError(operation.status, 'Bulk operation did not complete successfully')

            remaining = budget - (time.monotonic() - started)
            if remaining <= 0:
                break
            await asyncio.sleep(min(self.poll_interval, remaining))

        status = operation.status if operation else 'PENDING'
        logger.info(f"wait budget of {max_wait_ms}ms exhausted after {polls} polls status={status}")
        raise WaitTimeoutError(status, 'Still running')


class OrderCountService:
    """Approximate live order count with a REST fallback"""

    def __init__(self, connector: StoreConnector):
        self.connector = connector

    async def get_total_orders(self, query_filter: Optional[str] = None) -> Dict:
        try:
            count, precision = await asyncio.to_thread(self.connector.count_orders, query_filter)
            return {'totalOrders': count, 'precision': precision}
        except OrderCountError as e:
            logger.warning(f"ordersCount failed, trying REST fallback: {e}")
            primary_error = e

        # Deprecated REST fallback as a last resort
        try:
            count = await asyncio.to_thread(self.connector.count_orders_rest)
        except OrderCountError as e:
            raise UpstreamTransportError(f"{primary_error}; {e}") from e

        return {'totalOrders': count}
