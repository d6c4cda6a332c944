"""
Data model - bulk operations, cached results, request parameters
"""
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Mapping, Optional


# Bulk operation statuses
IDLE = 'IDLE'
CREATED = 'CREATED'
RUNNING = 'RUNNING'
CANCELING = 'CANCELING'
COMPLETED = 'COMPLETED'
FAILED = 'FAILED'
CANCELED = 'CANCELED'
EXPIRED = 'EXPIRED'
UNKNOWN = 'UNKNOWN'

KNOWN_STATUSES = {IDLE, CREATED, RUNNING, CANCELING, COMPLETED, FAILED, CANCELED, EXPIRED}
TERMINAL_FAILURES = frozenset({FAILED, CANCELED, EXPIRED})
# Statuses that need a new bulk operation before a count can be produced
RESTARTABLE = TERMINAL_FAILURES | {IDLE}

# Parameter defaults and caps
DEFAULT_MAX_WAIT_MS = 18_000
MAX_WAIT_MS = 30_000
DEFAULT_MAX_AGE_MINUTES = 60
MAX_AGE_MINUTES = 1440
DEFAULT_MIN_START_INTERVAL_MS = 60_000
MAX_START_INTERVAL_MS = 5 * 60_000


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a Shopify ISO-8601 timestamp into an aware UTC datetime"""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')


def age_minutes(since: datetime, now: Optional[datetime] = None) -> float:
    now = now or datetime.now(timezone.utc)
    return (now - since).total_seconds() / 60


@dataclass
class BulkOperation:
    """The store's current bulk operation (Shopify allows one at a time)"""
    id: Optional[str]
    status: str
    object_count: Optional[int] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    url: Optional[str] = None
    partial_data_url: Optional[str] = None
    error_code: Optional[str] = None

    @classmethod
    def from_graphql(cls, node: Optional[Dict]) -> Optional['BulkOperation']:
        """Build from a currentBulkOperation / bulkOperation payload"""
        if not node:
            return None

        status = node.get('status') or UNKNOWN
        if status not in KNOWN_STATUSES:
            status = UNKNOWN

        # objectCount is an UnsignedInt64, serialized as a string
        object_count = node.get('objectCount')
        object_count = int(object_count) if object_count not in (None, '') else None

        return cls(
            id=node.get('id'),
            status=status,
            object_count=object_count,
            created_at=parse_timestamp(node.get('createdAt')),
            completed_at=parse_timestamp(node.get('completedAt')),
            url=node.get('url'),
            partial_data_url=node.get('partialDataUrl'),
            error_code=node.get('errorCode'),
        )

    @property
    def finished_at(self) -> Optional[datetime]:
        # Older API versions only report createdAt
        return self.completed_at or self.created_at

    def age_minutes(self, now: Optional[datetime] = None) -> Optional[float]:
        if self.finished_at is None:
            return None
        return age_minutes(self.finished_at, now)

    def is_fresh(self, max_age_minutes: int, now: Optional[datetime] = None) -> bool:
        age = self.age_minutes(now)
        return age is not None and age <= max_age_minutes


@dataclass
class CachedResult:
    """Last exact count seen for a completed bulk operation"""
    exact_orders: int
    completed_at: datetime

    def age_minutes(self, now: Optional[datetime] = None) -> float:
        return age_minutes(self.completed_at, now)


_LEADING_INT = re.compile(r'\s*([+-]?\d+)')


def _int_param(query: Mapping[str, str], name: str, default: int, upper: int) -> int:
    # Leading integer wins, so "1500ms" -> 1500 and "12.5" -> 12
    raw = query.get(name)
    match = _LEADING_INT.match(str(raw)) if raw is not None else None
    value = int(match.group(1)) if match else default
    return max(0, min(value, upper))


def _flag_param(query: Mapping[str, str], name: str) -> bool:
    return str(query.get(name) or '0') == '1'


@dataclass
class CountRequest:
    """Parameters of an exact order count request"""
    query_filter: Optional[str] = None
    wait: bool = False
    max_wait_ms: int = DEFAULT_MAX_WAIT_MS
    force: bool = False
    max_age_minutes: int = DEFAULT_MAX_AGE_MINUTES
    min_start_interval_ms: int = DEFAULT_MIN_START_INTERVAL_MS

    @classmethod
    def from_query(cls, query: Optional[Mapping[str, str]]) -> 'CountRequest':
        """Parse and clamp querystring parameters"""
        query = query or {}
        query_filter = query.get('query')
        if not isinstance(query_filter, str) or not query_filter:
            query_filter = None

        return cls(
            query_filter=query_filter,
            wait=_flag_param(query, 'wait'),
            max_wait_ms=_int_param(query, 'timeoutMs', DEFAULT_MAX_WAIT_MS, MAX_WAIT_MS),
            force=_flag_param(query, 'force'),
            max_age_minutes=_int_param(query, 'maxAgeMinutes', DEFAULT_MAX_AGE_MINUTES, MAX_AGE_MINUTES),
            min_start_interval_ms=_int_param(
                query, 'minStartIntervalMs', DEFAULT_MIN_START_INTERVAL_MS, MAX_START_INTERVAL_MS
            ),
        )


# Where a count came from
SOURCE_CURRENT = 'currentBulkOperation'
SOURCE_CACHE = 'memory-cache'
SOURCE_POLL = 'poll'


@dataclass
class CountResult:
    """Successful outcome of an exact order count request"""
    status: str
    source: str
    exact_orders: Optional[int] = None
    object_count: Optional[int] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    age_minutes: Optional[float] = None

    @property
    def is_exact(self) -> bool:
        return self.exact_orders is not None

    def to_dict(self) -> Dict:
        if self.is_exact:
            body = {
                'status': self.status,
                'exactOrders': self.exact_orders,
                'completedAt': format_timestamp(self.completed_at),
                'source': self.source,
            }
            if self.age_minutes is not None:
                body['ageMinutes'] = round(self.age_minutes, 2)
            return body

        body = {'status': self.status}
        if self.object_count is not None:
            body['objectCount'] = self.object_count
        if self.created_at is not None:
            body['createdAt'] = format_timestamp(self.created_at)
        if self.completed_at is not None:
            body['completedAt'] = format_timestamp(self.completed_at)
        body['source'] = self.source
        return body
