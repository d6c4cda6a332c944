from unittest.mock import MagicMock, patch

import pytest
import requests

from connectors import get_connector
from connectors.shopify_connector import ShopifyConnector, build_bulk_orders_query, escape_quotes
from errors import ConfigurationError, UpstreamTransportError, UpstreamValidationError
from models import COMPLETED, RUNNING

CONFIG = {'shop_url': 'example.myshopify.com', 'access_token': 'shpat_test', 'api_version': '2025-07'}


def json_response(body, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(
            f"{status_code} Server Error", response=response
        )
        response.text = 'upstream exploded'
    return response


@pytest.fixture
def connector():
    connector = ShopifyConnector(CONFIG)
    connector.session = MagicMock()
    return connector


def test_escape_quotes():
    assert escape_quotes('tag:"vip"') == 'tag:\\"vip\\"'
    assert escape_quotes('a\\b') == 'a\\\\b'
    # Backslashes are escaped before quotes
    assert escape_quotes('\\"') == '\\\\\\"'


def test_bulk_query_embeds_escaped_filter():
    assert build_bulk_orders_query() == '{ orders(first: 250) { edges { node { id } } } }'
    assert build_bulk_orders_query('tag:"vip"') == (
        '{ orders(first: 250, query: "tag:\\"vip\\"") { edges { node { id } } } }'
    )


def test_missing_credentials_raise_configuration_error():
    with pytest.raises(ConfigurationError):
        ShopifyConnector({'shop_url': 'example.myshopify.com', 'access_token': None})
    with pytest.raises(ConfigurationError):
        ShopifyConnector({'shop_url': '', 'access_token': 'shpat_test'})


def test_get_connector_registry():
    assert isinstance(get_connector('Shopify', CONFIG), ShopifyConnector)
    with pytest.raises(ValueError):
        get_connector('woocommerce', CONFIG)


def test_session_carries_access_token():
    connector = ShopifyConnector(CONFIG)
    assert connector.session.headers['X-Shopify-Access-Token'] == 'shpat_test'
    assert connector.graphql_url == 'https://example.myshopify.com/admin/api/2025-07/graphql.json'


def test_get_current_bulk_operation(connector):
    connector.session.post.return_value = json_response({'data': {'currentBulkOperation': {
        'id': 'gid://shopify/BulkOperation/1',
        'status': 'COMPLETED',
        'objectCount': '42',
        'createdAt': '2025-01-01T10:00:00Z',
        'completedAt': '2025-01-01T10:01:00Z',
    }}})

    op = connector.get_current_bulk_operation()

    assert op.status == COMPLETED
    assert op.object_count == 42
    url = connector.session.post.call_args[0][0]
    assert url.endswith('/admin/api/2025-07/graphql.json')


def test_get_current_bulk_operation_none(connector):
    connector.session.post.return_value = json_response({'data': {'currentBulkOperation': None}})

    assert connector.get_current_bulk_operation() is None


def test_start_bulk_operation_sends_filter_as_variable(connector):
    connector.session.post.return_value = json_response({'data': {'bulkOperationRunQuery': {
        'bulkOperation': {'id': 'gid://shopify/BulkOperation/2', 'status': 'CREATED'},
        'userErrors': [],
    }}})

    op = connector.start_bulk_operation('financial_status:paid')

    assert op.id == 'gid://shopify/BulkOperation/2'
    payload = connector.session.post.call_args[1]['json']
    assert 'bulkOperationRunQuery' in payload['query']
    assert payload['variables']['query'] == build_bulk_orders_query('financial_status:paid')


def test_start_bulk_operation_user_errors(connector):
    connector.session.post.return_value = json_response({'data': {'bulkOperationRunQuery': {
        'bulkOperation': None,
        'userErrors': [{'field': ['query'], 'message': 'Invalid search field for this query.'}],
    }}})

    with pytest.raises(UpstreamValidationError) as exc_info:
        connector.start_bulk_operation('bogus:1')

    assert exc_info.value.user_errors[0]['field'] == ['query']
    assert 'Invalid search field' in str(exc_info.value)


def test_graphql_errors_are_transport_errors(connector):
    connector.session.post.return_value = json_response({'errors': [{'message': 'Throttled'}]})

    with pytest.raises(UpstreamTransportError) as exc_info:
        connector.get_current_bulk_operation()

    assert 'Throttled' in str(exc_info.value)


def test_http_errors_are_transport_errors(connector, caplog):
    connector.session.post.return_value = json_response({}, status_code=502)

    with pytest.raises(UpstreamTransportError) as exc_info:
        connector.count_orders()

    # Response body is logged, not put in the client-facing message
    assert '502 Server Error' in str(exc_info.value)
    assert 'upstream exploded' not in str(exc_info.value)
    assert 'upstream exploded' in caplog.text


@pytest.mark.parametrize('orders_count', [
    {'count': None, 'precision': 'EXACT'},
    {'precision': 'EXACT'},
    {'count': 'many', 'precision': 'EXACT'},
    ['unexpected'],
])
def test_malformed_orders_count_is_transport_error(connector, orders_count):
    connector.session.post.return_value = json_response({'data': {'ordersCount': orders_count}})

    with pytest.raises(UpstreamTransportError):
        connector.count_orders()


@pytest.mark.parametrize('body', [['not', 'a', 'dict'], 'oops', {'data': ['x']}])
def test_non_object_bodies_are_transport_errors(connector, body):
    connector.session.post.return_value = json_response(body)

    with pytest.raises(UpstreamTransportError):
        connector.get_current_bulk_operation()


def test_network_errors_are_transport_errors(connector):
    connector.session.post.side_effect = requests.exceptions.ConnectionError('connection reset')

    with pytest.raises(UpstreamTransportError):
        connector.get_current_bulk_operation()


def test_count_orders(connector):
    connector.session.post.return_value = json_response(
        {'data': {'ordersCount': {'count': 1500, 'precision': 'AT_LEAST'}}}
    )

    assert connector.count_orders('status:open') == (1500, 'AT_LEAST')
    assert connector.session.post.call_args[1]['json']['variables'] == {'query': 'status:open'}


def test_count_orders_rest(connector):
    connector.session.get.return_value = json_response({'count': 1499})

    assert connector.count_orders_rest() == 1499
    url = connector.session.get.call_args[0][0]
    assert url == 'https://example.myshopify.com/admin/api/2025-07/orders/count.json'


def test_count_orders_rest_failure(connector):
    connector.session.get.return_value = json_response({}, status_code=500)

    with pytest.raises(UpstreamTransportError):
        connector.count_orders_rest()


@patch('connectors.shopify_connector.requests.Session')
def test_timeout_is_passed_through(session_class):
    session_class.return_value.post.return_value = json_response({'data': {'currentBulkOperation': None}})
    connector = ShopifyConnector(dict(CONFIG, timeout=5.0))

    connector.get_current_bulk_operation()

    assert session_class.return_value.post.call_args[1]['timeout'] == 5.0


def test_started_operation_status(connector):
    connector.session.post.return_value = json_response({'data': {'bulkOperationRunQuery': {
        'bulkOperation': {'id': 'x', 'status': 'RUNNING', 'objectCount': '0'},
        'userErrors': [],
    }}})

    op = connector.start_bulk_operation()

    assert op.status == RUNNING
    assert op.object_count == 0
