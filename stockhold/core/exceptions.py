"""
Stockhold Exception Hierarchy

Structured exception classes for the stock reservation subsystem and the
checkout collaborators around it. All exceptions include code, message, and
details for audit trail and debugging.

Exception Hierarchy:
    StockholdError
    ├── InventoryError
    │   ├── InsufficientStockError
    │   ├── ProductNotFoundError
    │   └── StockIntegrityError
    ├── ReservationError
    │   ├── InvalidReservationError
    │   └── DuplicateReservationError
    ├── TransactionFailureError
    └── OrderError
        └── OrderNotFoundError
"""
from typing import Optional, Dict, Any


class StockholdError(Exception):
    """
    Base exception for all Stockhold custom errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context for debugging/audit
        severity: P0-P3 severity level
        status_code: HTTP status used when the error reaches the API edge
    """

    default_code: str = "STOCKHOLD_ERROR"
    default_severity: str = "P2"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[str] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        self.severity = severity or self.default_severity
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "severity": self.severity,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


# =============================================================================
# INVENTORY ERRORS
# =============================================================================

class InventoryError(StockholdError):
    """Base exception for inventory-related errors."""
    default_code = "INVENTORY_ERROR"
    default_severity = "P1"


class InsufficientStockError(InventoryError):
    """Requested units exceed what is available. Recoverable by the caller."""
    default_code = "INSUFFICIENT_STOCK"
    default_severity = "P3"
    status_code = 409

    def __init__(
        self,
        message: str,
        product_id: Optional[int] = None,
        requested_qty: Optional[int] = None,
        available_qty: Optional[int] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details.update({
            "product_id": product_id,
            "requested_qty": requested_qty,
            "available_qty": available_qty,
        })
        super().__init__(message, details=details, **kwargs)
        self.product_id = product_id
        self.requested_qty = requested_qty
        self.available_qty = available_qty


class ProductNotFoundError(InventoryError):
    """A referenced product does not exist (stale catalog reference)."""
    default_code = "PRODUCT_NOT_FOUND"
    default_severity = "P2"
    status_code = 404

    def __init__(self, message: str, product_id: Optional[int] = None, **kwargs):
        details = kwargs.pop("details", {})
        details["product_id"] = product_id
        super().__init__(message, details=details, **kwargs)
        self.product_id = product_id


class StockIntegrityError(InventoryError):
    """Counters and ledger disagree; applying a change would break an invariant."""
    default_code = "STOCK_INTEGRITY_VIOLATION"
    default_severity = "P0"

    def __init__(
        self,
        message: str,
        product_id: Optional[int] = None,
        order_id: Optional[str] = None,
        quantity: Optional[int] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details.update({
            "product_id": product_id,
            "order_id": order_id,
            "quantity": quantity,
        })
        super().__init__(message, details=details, **kwargs)


# =============================================================================
# RESERVATION ERRORS
# =============================================================================

class ReservationError(StockholdError):
    """Base exception for reservation request errors."""
    default_code = "RESERVATION_ERROR"
    default_severity = "P2"
    status_code = 400


class InvalidReservationError(ReservationError):
    """Malformed reservation request (empty cart, bad quantity, missing order)."""
    default_code = "INVALID_RESERVATION"
    default_severity = "P3"
    status_code = 422


class DuplicateReservationError(ReservationError):
    """The order already holds a reservation."""
    default_code = "DUPLICATE_RESERVATION"
    status_code = 409

    def __init__(self, message: str, order_id: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        details["order_id"] = order_id
        super().__init__(message, details=details, **kwargs)


# =============================================================================
# INFRASTRUCTURE ERRORS
# =============================================================================

class TransactionFailureError(StockholdError):
    """
    Transient store failure. The transaction was rolled back before this was
    raised; the original exception is chained as __cause__.
    """
    default_code = "TRANSACTION_FAILED"
    default_severity = "P1"
    status_code = 503

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        order_id: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details.update({
            "operation": operation,
            "order_id": order_id,
        })
        super().__init__(message, details=details, **kwargs)


# =============================================================================
# ORDER ERRORS
# =============================================================================

class OrderError(StockholdError):
    """Base exception for order intake/outcome errors."""
    default_code = "ORDER_ERROR"
    default_severity = "P2"
    status_code = 400


class OrderNotFoundError(OrderError):
    """Order does not exist."""
    default_code = "ORDER_NOT_FOUND"
    status_code = 404

    def __init__(self, message: str, order_id: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        details["order_id"] = order_id
        super().__init__(message, details=details, **kwargs)


# =============================================================================
# EXCEPTION CATALOG
# =============================================================================

EXCEPTION_CATALOG = {
    "INSUFFICIENT_STOCK": {"class": InsufficientStockError, "severity": "P3"},
    "PRODUCT_NOT_FOUND": {"class": ProductNotFoundError, "severity": "P2"},
    "STOCK_INTEGRITY_VIOLATION": {"class": StockIntegrityError, "severity": "P0"},
    "INVALID_RESERVATION": {"class": InvalidReservationError, "severity": "P3"},
    "DUPLICATE_RESERVATION": {"class": DuplicateReservationError, "severity": "P2"},
    "TRANSACTION_FAILED": {"class": TransactionFailureError, "severity": "P1"},
    "ORDER_NOT_FOUND": {"class": OrderNotFoundError, "severity": "P2"},
}
