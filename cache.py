"""
Single-slot, process-lifetime cache of the last exact order count
"""
from datetime import datetime
from typing import Optional

from models import CachedResult


class ResultCache:
    """Holds the last completed result, served only while fresh enough"""

    def __init__(self):
        self._result: Optional[CachedResult] = None

    def get(self, max_age_minutes: int, now: Optional[datetime] = None) -> Optional[CachedResult]:
        """Return the cached result if it is at most max_age_minutes old"""
        # A stale entry is kept; age only grows so it will never be served again
        if self._result is None:
            return None
        if self._result.age_minutes(now) > max_age_minutes:
            return None
        return self._result

    def put(self, exact_orders: int, completed_at: datetime) -> CachedResult:
        self._result = CachedResult(exact_orders=exact_orders, completed_at=completed_at)
        return self._result

    def clear(self):
        self._result = None
