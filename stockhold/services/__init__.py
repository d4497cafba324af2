# Services layer for business logic
from typing import Optional

from stockhold.services.reservation_manager import (
    ReleaseReason,
    ReservationResult,
    ReservationState,
    StockReservationManager,
)
from stockhold.services.stock_store import StockItem, StockStore

_reservation_manager: Optional[StockReservationManager] = None


def get_reservation_manager() -> StockReservationManager:
    """Process-wide manager over the configured database."""
    global _reservation_manager
    if _reservation_manager is None:
        from stockhold.services.sql_stock_store import SqlAlchemyStockStore

        _reservation_manager = StockReservationManager(SqlAlchemyStockStore())
    return _reservation_manager


__all__ = [
    "ReleaseReason",
    "ReservationResult",
    "ReservationState",
    "StockItem",
    "StockReservationManager",
    "StockStore",
    "get_reservation_manager",
]
