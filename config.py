import os
from dotenv import load_dotenv

load_dotenv()

# Shopify
SHOPIFY_DOMAIN = os.getenv('SHOPIFY_DOMAIN')
# Support both SHOPIFY_ADMIN_API_ACCESS_TOKEN and legacy SHOPIFY_TOKEN
SHOPIFY_ACCESS_TOKEN = os.getenv('SHOPIFY_ADMIN_API_ACCESS_TOKEN') or os.getenv('SHOPIFY_TOKEN')
SHOPIFY_API_VERSION = os.getenv('SHOPIFY_API_VERSION', '2025-07')

# Unset means no timeout on upstream calls (requests default)
_timeout = os.getenv('SHOPIFY_REQUEST_TIMEOUT')
SHOPIFY_REQUEST_TIMEOUT = float(_timeout) if _timeout else None

# Polling (seconds between bulk operation status checks)
POLL_INTERVAL = float(os.getenv('POLL_INTERVAL', 1.4))

# Logging
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

# Local server
HOST = os.getenv('HOST', '127.0.0.1')
PORT = int(os.getenv('PORT', 8000))


def store_config() -> dict:
    """Connector config for the configured store"""
    return {
        'shop_url': SHOPIFY_DOMAIN,
        'access_token': SHOPIFY_ACCESS_TOKEN,
        'api_version': SHOPIFY_API_VERSION,
        'timeout': SHOPIFY_REQUEST_TIMEOUT,
    }
