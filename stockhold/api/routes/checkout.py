"""
Checkout API Routes

SAFE CHECKOUT FLOW with stock blocking:
1. POST /orders: create pending order, block stock (all lines or none).
   Runs before the payment preference is created; a short item aborts here.
2. POST /webhook: payment provider outcome -> commit or release.
   At-least-once delivery is fine, repeated outcomes are no-ops.
3. GET /orders/{id}/status: polling path for the storefront.
4. POST /orders/{id}/cancel: buyer abandoned checkout.
5. Background sweep (jobs/stock_sweep_scheduler.py) releases expired blocks.
"""
import logging
import time
from typing import List, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from stockhold.api.deps import get_order_service
from stockhold.core.config import settings
from stockhold.core.rate_limit import limiter
from stockhold.services.order_service import OrderService, map_provider_status

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/checkout", tags=["checkout"])


class CheckoutItem(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)


class PlaceOrderRequest(BaseModel):
    items: List[CheckoutItem] = Field(min_length=1)
    user_ref: Optional[str] = None


class PaymentNotification(BaseModel):
    order_id: str
    status: str
    payment_id: Optional[str] = None


@router.post("/orders", status_code=201)
@limiter.limit(settings.RATE_LIMIT_CHECKOUT)
async def place_order(
    request: Request,
    payload: PlaceOrderRequest,
    service: OrderService = Depends(get_order_service),
):
    """
    Create an order and block its stock.

    409 when an item lacks stock (message names the product), 404 for an
    unknown product. Nothing is reserved and no order remains in either case.
    """
    start_time = time.time()

    order, reservation = await service.place_order(
        [item.model_dump() for item in payload.items],
        user_ref=payload.user_ref,
    )

    duration_ms = (time.time() - start_time) * 1000
    logger.info(
        f"CHECKOUT_METRIC: order_placed "
        f"order_id={order.id} "
        f"amount={order.total_amount} "
        f"item_count={len(reservation.lines)} "
        f"duration_ms={duration_ms:.2f}"
    )

    return {
        "order_id": order.id,
        "status": order.status,
        "total_amount": order.total_amount,
        "items": order.items,
        "reservation_expires_at": reservation.expires_at.isoformat(),
        "reservation_ttl_minutes": settings.STOCK_BLOCK_TTL_MINUTES,
    }


@router.post("/webhook")
async def payment_webhook(
    notification: PaymentNotification,
    service: OrderService = Depends(get_order_service),
):
    """
    Payment outcome notification.

    Signature verification belongs to the provider integration in front of
    this handler.
    """
    outcome = map_provider_status(notification.status)
    logger.info(
        f"Payment notification for order {notification.order_id}: "
        f"status={notification.status} outcome={outcome.value}"
    )

    order, reservation = await service.apply_payment_outcome(
        notification.order_id,
        outcome,
        payment_id=notification.payment_id,
    )

    return {
        "status": "processed",
        "outcome": outcome.value,
        "order_status": order.status,
        "reservation": reservation.to_dict() if reservation else None,
    }


@router.get("/orders/{order_id}/status")
async def get_order_status(
    order_id: str,
    service: OrderService = Depends(get_order_service),
):
    return await service.get_order_status(order_id)


@router.post("/orders/{order_id}/cancel")
async def cancel_order(
    order_id: str,
    service: OrderService = Depends(get_order_service),
):
    """Release the order's stock block. Safe to repeat."""
    order, reservation = await service.cancel_order(order_id)
    return {
        "order_id": order.id,
        "order_status": order.status,
        "reservation": reservation.to_dict(),
        "units_released": reservation.units,
    }
