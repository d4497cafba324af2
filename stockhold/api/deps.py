"""
Shared FastAPI dependencies
"""
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from stockhold.core.database import get_db
from stockhold.services import StockReservationManager, get_reservation_manager
from stockhold.services.order_service import OrderService


def get_order_service(
    db: AsyncSession = Depends(get_db),
    manager: StockReservationManager = Depends(get_reservation_manager),
) -> OrderService:
    return OrderService(db, manager)
