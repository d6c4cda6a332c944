"""
Shopify connector implementation using the Admin GraphQL API
"""
import logging
import requests
from typing import Dict, Optional, Tuple
from .base import StoreConnector
from errors import ConfigurationError, UpstreamTransportError, UpstreamValidationError
from models import BulkOperation

logger = logging.getLogger(__name__)


CURRENT_BULK_OPERATION = """
query {
  currentBulkOperation {
    id status errorCode objectCount url partialDataUrl createdAt completedAt
  }
}
"""

RUN_BULK_QUERY = """
mutation RunBulkQuery($query: String!) {
  bulkOperationRunQuery(query: $query) {
    bulkOperation { id status objectCount createdAt }
    userErrors { field message }
  }
}
"""

ORDERS_COUNT = """
query OrdersCount($query: String) {
  ordersCount(query: $query) {
    count
    precision
  }
}
"""


def escape_quotes(value: str) -> str:
    """Escape a value for embedding in a double-quoted GraphQL string"""
    return value.replace('\\', '\\\\').replace('"', '\\"')


def build_bulk_orders_query(query_filter: Optional[str] = None) -> str:
    """Bulk query emitting one line per order id"""
    arguments = 'first: 250'
    if query_filter:
        arguments += f', query: "{escape_quotes(query_filter)}"'
    return f"{{ orders({arguments}) {{ edges {{ node {{ id }} }} }} }}"


class ShopifyConnector(StoreConnector):
    """Shopify store connector using the Admin GraphQL API"""

    def __init__(self, config: Dict):
        super().__init__(config)

        self.shop_url = config.get('shop_url')
        self.access_token = config.get('access_token')
        if not self.shop_url or not self.access_token:
            raise ConfigurationError("Missing SHOPIFY_DOMAIN or SHOPIFY_ADMIN_API_ACCESS_TOKEN")

        self.api_version = config.get('api_version') or '2025-07'
        # None leaves requests without a timeout
        self.timeout = config.get('timeout')

        # Base URL for API requests
        self.base_url = f"https://{self.shop_url}/admin/api/{self.api_version}"
        self.graphql_url = f"{self.base_url}/graphql.json"

        # Setup session with auth
        self.session = requests.Session()
        self.session.headers.update({
            'Content-Type': 'application/json',
            'X-Shopify-Access-Token': self.access_token
        })

    def get_current_bulk_operation(self) -> Optional[BulkOperation]:
        """Get the current bulk operation"""
        data = self._graphql(CURRENT_BULK_OPERATION)
        return BulkOperation.from_graphql(data.get('currentBulkOperation'))

    def start_bulk_operation(self, query_filter: Optional[str] = None) -> BulkOperation:
        """Start a bulk export of order ids"""
        bulk_query = build_bulk_orders_query(query_filter)
        data = self._graphql(RUN_BULK_QUERY, {'query': bulk_query})

        result = data.get('bulkOperationRunQuery') or {}
        user_errors = result.get('userErrors') or []
        if user_errors:
            messages = '; '.join(e.get('message', '') for e in user_errors)
            raise UpstreamValidationError(f"Bulk start failed: {messages}", user_errors)

        operation = BulkOperation.from_graphql(result.get('bulkOperation'))
        if operation is None:
            raise UpstreamTransportError("Bulk start returned no bulk operation")

        logger.info(f"Started bulk operation {operation.id} status={operation.status}")
        return operation

    def count_orders(self, query_filter: Optional[str] = None) -> Tuple[int, str]:
        """Approximate order count via ordersCount"""
        data = self._graphql(ORDERS_COUNT, {'query': query_filter})
        orders_count = data.get('ordersCount')
        if not orders_count:
            raise UpstreamTransportError("ordersCount missing from response")
        try:
            return int(orders_count['count']), orders_count.get('precision')
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise UpstreamTransportError(f"ordersCount returned an unexpected body: {e}") from e

    def count_orders_rest(self) -> int:
        """Order count via the deprecated REST endpoint"""
        url = f"{self.base_url}/orders/count.json"
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
            return int(response.json()['count'])
        except requests.exceptions.RequestException as e:
            raise UpstreamTransportError(f"REST fallback failed: {e}") from e
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamTransportError(f"REST fallback returned an unexpected body: {e}") from e

    def close(self):
        self.session.close()

    def _graphql(self, query: str, variables: Optional[Dict] = None) -> Dict:
        """Run a GraphQL document, return its data"""
        payload = {'query': query}
        if variables is not None:
            payload['variables'] = variables

        try:
            response = self.session.post(self.graphql_url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            body = response.json()
        except requests.exceptions.RequestException as e:
            # Upstream bodies stay in the server log, clients get the short message
            if getattr(e, 'response', None) is not None:
                logger.error(f"Shopify response body: {e.response.text[:500]}")
            raise UpstreamTransportError(f"Shopify request failed: {e}") from e
        except ValueError as e:
            raise UpstreamTransportError(f"Shopify returned invalid JSON: {e}") from e

        if not isinstance(body, dict):
            raise UpstreamTransportError(f"Shopify returned an unexpected body: {type(body).__name__}")

        errors = body.get('errors')
        if errors:
            if isinstance(errors, list):
                errors = '; '.join(str(err.get('message', err)) if isinstance(err, dict) else str(err)
                                   for err in errors)
            raise UpstreamTransportError(f"Shopify GraphQL errors: {errors}")

        data = body.get('data') or {}
        if not isinstance(data, dict):
            raise UpstreamTransportError(f"Shopify returned unexpected data: {type(data).__name__}")
        return data
