"""
Base connector interface - easy to add new store types
"""
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

from models import BulkOperation


class StoreConnector(ABC):
    """Base class for all store connectors"""

    def __init__(self, config: Dict):
        self.config = config

    @abstractmethod
    def get_current_bulk_operation(self) -> Optional[BulkOperation]:
        """Get the store's current bulk operation, None if there is none"""
        pass

    @abstractmethod
    def start_bulk_operation(self, query_filter: Optional[str] = None) -> BulkOperation:
        """Start a bulk operation that emits one line per matching order"""
        pass

    @abstractmethod
    def count_orders(self, query_filter: Optional[str] = None) -> Tuple[int, str]:
        """Approximate order count, returns (count, precision)"""
        pass

    @abstractmethod
    def count_orders_rest(self) -> int:
        """Order count from the legacy REST endpoint"""
        pass

    def close(self):
        """Release any held resources"""
        pass
