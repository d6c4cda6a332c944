"""
Error taxonomy - every error is turned into a JSON response in handlers.py
"""
from typing import List, Dict, Optional


class OrderCountError(Exception):
    """Base class for all order count errors"""


class ConfigurationError(OrderCountError):
    """Store domain or access token missing"""


class UpstreamError(OrderCountError):
    """Shopify call failed"""


class UpstreamTransportError(UpstreamError):
    """Network or API failure talking to Shopify"""


class UpstreamValidationError(UpstreamError):
    """Shopify rejected the request with field-level user errors"""

    def __init__(self, message: str, user_errors: Optional[List[Dict]] = None):
        super().__init__(message)
        self.user_errors = user_errors or []


class JobStateError(OrderCountError):
    """Base for outcomes that report a bulk operation status instead of a count"""

    def __init__(self, status: str, message: str = ''):
        super().__init__(message or status)
        self.status = status


class TerminalJobError(JobStateError):
    """Bulk operation ended FAILED, CANCELED or EXPIRED"""


class SuppressedStartError(JobStateError):
    """A start was refused because the last one happened too recently"""


class WaitTimeoutError(JobStateError):
    """Wait budget ran out before the bulk operation finished"""
