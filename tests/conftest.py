import logging
import sys
import threading
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from connectors.base import StoreConnector  # noqa: E402
from errors import UpstreamTransportError  # noqa: E402
from handlers import Services  # noqa: E402
from models import BulkOperation, RUNNING  # noqa: E402


def minutes_ago(minutes):
    return datetime.now(timezone.utc) - timedelta(minutes=minutes)


def operation(status, object_count=None, age_minutes=0.0, op_id='gid://shopify/BulkOperation/1'):
    return BulkOperation(
        id=op_id,
        status=status,
        object_count=object_count,
        created_at=minutes_ago(age_minutes),
    )


class FakeConnector(StoreConnector):
    """In-memory connector that records every upstream call"""

    def __init__(self, current=None, after_start=None, start_delay=0.0):
        super().__init__({})
        self.current = current
        # Operations returned by successive status queries after a start
        self.after_start = list(after_start) if after_start is not None else None
        self.start_delay = start_delay
        self.start_error = None
        self.count_error = None
        self.rest_error = None
        self.start_calls = []
        self.current_calls = 0
        self._lock = threading.Lock()

    def get_current_bulk_operation(self):
        with self._lock:
            self.current_calls += 1
            if self.after_start and self.start_calls:
                # The last one sticks
                if len(self.after_start) > 1:
                    return self.after_start.pop(0)
                return self.after_start[0]
            return self.current

    def start_bulk_operation(self, query_filter=None):
        with self._lock:
            self.start_calls.append(query_filter)
        if self.start_delay:
            time.sleep(self.start_delay)
        if self.start_error:
            raise self.start_error
        started = operation(RUNNING, op_id=f'gid://shopify/BulkOperation/{len(self.start_calls) + 1}')
        if self.after_start is None:
            self.current = started
        return started

    def count_orders(self, query_filter=None):
        if self.count_error:
            raise self.count_error
        return 1234, 'EXACT'

    def count_orders_rest(self):
        if self.rest_error:
            raise self.rest_error
        return 1200


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def services(connector):
    return Services.create(connector, poll_interval=0.01)


@pytest.fixture
def transport_error():
    return UpstreamTransportError("Shopify request failed: connection reset")


@pytest.fixture(autouse=True)
def setup_test_logging(caplog):
    caplog.set_level(logging.DEBUG)
