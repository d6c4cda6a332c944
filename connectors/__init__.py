"""
Connector factory - store type name -> connector class
"""
from .base import StoreConnector
from .shopify_connector import ShopifyConnector

CONNECTORS = {
    'shopify': ShopifyConnector,
}

__all__ = ['CONNECTORS', 'StoreConnector', 'ShopifyConnector', 'get_connector']


def get_connector(store_type: str, config: dict) -> StoreConnector:
    """Build the connector for store_type, ConfigurationError if credentials are missing"""
    connector_class = CONNECTORS.get((store_type or '').strip().lower())
    if connector_class is None:
        raise ValueError(f"Unsupported store type: {store_type}")
    return connector_class(config)
