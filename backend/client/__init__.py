"""
Python client for the inventory API
"""
from .session import ApiSession
from .api import ApiError, InventoryApiClient
from .validation import ClientValidationError
from .polling import PollingTask, LowStockNotifier, RequestsWatcher

__all__ = [
    "ApiSession",
    "ApiError",
    "InventoryApiClient",
    "ClientValidationError",
    "PollingTask",
    "LowStockNotifier",
    "RequestsWatcher",
]
