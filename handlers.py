"""
HTTP boundary - maps service outcomes to status codes, headers and JSON bodies

Handlers are framework neutral: they take a method and a querystring mapping
and return an HttpResponse. lambda_handler.py and main.py adapt them.
"""
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

import config
from cache import ResultCache
from connectors import get_connector
from coordinator import StartCoordinator
from errors import (
    ConfigurationError, SuppressedStartError, TerminalJobError,
    UpstreamValidationError, WaitTimeoutError,
)
from models import CountRequest, CountResult, format_timestamp
from service import ExactOrderCountService, OrderCountService

logger = logging.getLogger(__name__)


CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Methods': 'GET,OPTIONS',
    'Access-Control-Allow-Headers': 'Content-Type',
}
# Small CDN cache to protect against stampedes
EXACT_CACHE_CONTROL = 's-maxage=5, stale-while-revalidate=30'

MISSING_CONFIG = 'Missing SHOPIFY_DOMAIN or SHOPIFY_ADMIN_API_ACCESS_TOKEN'
SUPPRESSED_MESSAGE = 'Start suppressed to protect rate limits; try again shortly.'
STILL_RUNNING_MESSAGE = 'Still running, poll again or pass wait=1&timeoutMs=30000'


@dataclass
class HttpResponse:
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[Dict] = None

    def text(self) -> str:
        return json.dumps(self.body) if self.body is not None else ''


@dataclass
class Services:
    """Process-wide state: one connector, cache and start coordinator"""
    connector: object
    exact: ExactOrderCountService
    total: OrderCountService

    @classmethod
    def create(cls, connector, poll_interval: Optional[float] = None) -> 'Services':
        exact = ExactOrderCountService(
            connector,
            cache=ResultCache(),
            coordinator=StartCoordinator(),
            poll_interval=poll_interval,
        )
        return cls(connector=connector, exact=exact, total=OrderCountService(connector))


_services: Optional[Services] = None


def get_services() -> Services:
    """Build the process-wide services on first use"""
    global _services
    if _services is None:
        connector = get_connector('shopify', config.store_config())
        _services = Services.create(connector)
        logger.info(f"Order count services ready for {config.SHOPIFY_DOMAIN}")
    return _services


def reset_services():
    """Drop the process-wide services (tests, config reloads)"""
    global _services
    if _services is not None:
        _services.connector.close()
    _services = None


def _elapsed_ms(started: float) -> float:
    return (time.monotonic() - started) * 1000


def _respond(status_code: int, body: Optional[Dict], started: float,
             headers: Optional[Dict[str, str]] = None, timing: Optional[str] = None) -> HttpResponse:
    all_headers = dict(CORS_HEADERS)
    all_headers.update(headers or {})
    if body is not None:
        all_headers['Content-Type'] = 'application/json'

    server_timing = f"total;dur={_elapsed_ms(started):.1f}"
    all_headers['Server-Timing'] = f"{timing}, {server_timing}" if timing else server_timing
    return HttpResponse(status_code, all_headers, body)


def _preflight_or_reject(method: str, extra_headers: Dict[str, str]) -> Optional[HttpResponse]:
    method = (method or 'GET').upper()
    if method == 'OPTIONS':
        headers = dict(CORS_HEADERS)
        headers.update(extra_headers)
        return HttpResponse(200, headers)
    if method != 'GET':
        headers = dict(CORS_HEADERS)
        headers.update(extra_headers)
        headers.update({'Allow': 'GET, OPTIONS', 'Content-Type': 'application/json'})
        return HttpResponse(405, headers, {'error': 'Method not allowed'})
    return None


def _resolve(services: Optional[Services]) -> Services:
    return services if services is not None else get_services()


async def total_orders(method: str, query: Optional[Mapping[str, str]],
                       services: Optional[Services] = None) -> HttpResponse:
    """GET /total-orders?query=<filter>"""
    started = time.monotonic()
    early = _preflight_or_reject(method, {})
    if early:
        return early

    query = query or {}
    # Optional filter via querystring, e.g. ?query=financial_status:paid
    query_filter = query.get('query') or None

    try:
        body = await _resolve(services).total.get_total_orders(query_filter)
        return _respond(200, body, started)
    except ConfigurationError:
        logger.error(MISSING_CONFIG)
        return _respond(500, {'error': MISSING_CONFIG}, started)
    except Exception as e:
        logger.error(f"total-orders failed: {e}", exc_info=True)
        return _respond(500, {'error': 'Failed to fetch order count', 'detail': str(e)}, started)


def _result_headers(result: CountResult) -> Dict[str, str]:
    count = result.exact_orders if result.is_exact else result.object_count
    if count is None:
        return {}

    headers = {
        'X-Exact-Status': result.status,
        'X-Exact-Orders': str(count),
        'X-Exact-Source': result.source,
    }
    if result.completed_at is not None:
        headers['X-Exact-Completed-At'] = format_timestamp(result.completed_at)
    return headers


async def exact_order_count(method: str, query: Optional[Mapping[str, str]],
                            services: Optional[Services] = None) -> HttpResponse:
    """GET /exact-order-count?query=&wait=&timeoutMs=&force=&maxAgeMinutes=&minStartIntervalMs="""
    started = time.monotonic()
    cache_headers = {'Cache-Control': EXACT_CACHE_CONTROL}
    early = _preflight_or_reject(method, cache_headers)
    if early:
        return early

    request = CountRequest.from_query(query)

    try:
        result = await _resolve(services).exact.get_exact_count(request)
    except ConfigurationError:
        logger.error(MISSING_CONFIG)
        return _respond(500, {'error': MISSING_CONFIG}, started, cache_headers)
    except SuppressedStartError as e:
        return _respond(202, {'status': e.status, 'message': SUPPRESSED_MESSAGE}, started, cache_headers)
    except WaitTimeoutError as e:
        return _respond(202, {'status': e.status, 'message': STILL_RUNNING_MESSAGE}, started, cache_headers)
    except TerminalJobError as e:
        return _respond(500, {'status': e.status, 'error': 'Bulk operation did not complete successfully'},
                        started, cache_headers)
    except UpstreamValidationError as e:
        logger.warning(f"exact-order-count rejected: {e} userErrors={e.user_errors}")
        return _respond(400, {'error': 'Invalid bulk operation request', 'detail': str(e)},
                        started, cache_headers)
    except Exception as e:
        logger.error(f"exact-order-count failed: {e}", exc_info=True)
        return _respond(500, {'error': 'Failed to run exact order count', 'detail': str(e)},
                        started, cache_headers)

    headers = dict(cache_headers)
    headers.update(_result_headers(result))
    timing = f'exact;desc="{result.exact_orders}"' if result.is_exact else None
    return _respond(200, result.to_dict(), started, headers, timing)
