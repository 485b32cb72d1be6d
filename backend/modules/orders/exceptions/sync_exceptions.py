# backend/modules/orders/exceptions/sync_exceptions.py

from typing import Dict, Optional


class OrderSyncError(Exception):
    """Base exception for offline order reconciliation failures"""

    def __init__(self, message: str, error_code: str, details: Optional[Dict] = None):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict:
        """Convert exception to dictionary for API responses"""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


class StorageError(OrderSyncError):
    """Reading or writing the order store failed (timeout, constraint, driver error)"""

    def __init__(self, message: str, error_code: str = "STORAGE_ERROR",
                 details: Optional[Dict] = None):
        super().__init__(message, error_code, details)


class StorageTimeoutError(StorageError):
    """A statement exceeded the configured storage timeout"""

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, "STORAGE_TIMEOUT", details)


class LockTimeoutError(StorageError):
    """Another writer held the order lock for longer than we were willing to wait"""

    def __init__(self, key: str, timeout: float):
        self.key = key
        self.timeout = timeout
        super().__init__(
            f"Could not acquire lock for order {key} within {timeout}s",
            "LOCK_TIMEOUT",
            {"lock_key": key, "timeout_seconds": timeout},
        )


class OrderNotFoundError(OrderSyncError):
    """The order targeted by a resolution does not exist in this business"""

    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__(
            f"Order {order_id} not found", "ORDER_NOT_FOUND", {"order_id": order_id}
        )


class InvalidSnapshotError(OrderSyncError):
    """A snapshot could not be written back because a field is malformed"""

    def __init__(self, field: str, value, reason: str):
        self.field = field
        super().__init__(
            f"Invalid value for {field}: {reason}",
            "INVALID_SNAPSHOT",
            {"field": field, "value": str(value)},
        )
