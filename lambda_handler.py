import asyncio
import logging
import config
import handlers

logger = logging.getLogger()
logger.setLevel(config.LOG_LEVEL)

# One loop for the life of the container so process-wide state stays on it
_loop = asyncio.new_event_loop()

ROUTES = {
    'total-orders': handlers.total_orders,
    'exact-order-count': handlers.exact_order_count,
}


def _method(event):
    method = event.get('httpMethod')
    if not method:
        method = (event.get('requestContext') or {}).get('http', {}).get('method')
    return method or 'GET'


def _path(event):
    return event.get('rawPath') or event.get('path') or ''


def _to_lambda(response):
    return {
        'statusCode': response.status_code,
        'headers': response.headers,
        'body': response.text(),
    }


def _invoke(handler, event):
    method = _method(event)
    query = event.get('queryStringParameters') or {}
    logger.info(f"{method} {_path(event) or handler.__name__} query={query}")
    response = _loop.run_until_complete(handler(method, query))
    logger.info(f"{handler.__name__} -> {response.status_code}")
    return _to_lambda(response)


def total_orders_handler(event, context):
    return _invoke(handlers.total_orders, event)


def exact_order_count_handler(event, context):
    return _invoke(handlers.exact_order_count, event)


def lambda_handler(event, context):
    """Route by path for a single function serving both endpoints"""
    path = _path(event).rstrip('/')
    endpoint = path.rsplit('/', 1)[-1]
    handler = ROUTES.get(endpoint)
    if handler is None:
        logger.warning(f"No route for path {path!r}")
        return {
            'statusCode': 404,
            'headers': dict(handlers.CORS_HEADERS, **{'Content-Type': 'application/json'}),
            'body': '{"error": "Not found"}',
        }
    return _invoke(handler, event)
