"""
OrderService - checkout intake and payment outcome handling

Sits between the HTTP routes and the StockReservationManager:

- place_order: create a pending order, then block its stock. If blocking
  fails the order is deleted again, so no order exists without a reservation.
- apply_payment_outcome: approved -> commit(), rejected/cancelled -> release().
  Notifications may arrive more than once or out of order; the manager's
  no-op-on-empty-ledger behaviour keeps stock consistent either way.
- cancel_order: buyer abandoned checkout -> release().

Orders are stored through the request's AsyncSession; stock goes through the
manager's own transactions.
"""
import logging
import uuid
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stockhold.core.exceptions import OrderNotFoundError, ProductNotFoundError
from stockhold.core.utils import utcnow
from stockhold.models import Order, OrderStatus, Product
from stockhold.services.reservation_manager import (
    ItemInput,
    ReleaseReason,
    ReservationResult,
    StockReservationManager,
    normalize_items,
)

logger = logging.getLogger(__name__)


class PaymentOutcome(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    PENDING = "pending"


# Provider status -> outcome. Anything unknown is treated as still pending.
PROVIDER_STATUS_MAP = {
    "approved": PaymentOutcome.APPROVED,
    "rejected": PaymentOutcome.REJECTED,
    "cancelled": PaymentOutcome.CANCELLED,
    "refunded": PaymentOutcome.CANCELLED,
    "charged_back": PaymentOutcome.CANCELLED,
    "pending": PaymentOutcome.PENDING,
    "in_process": PaymentOutcome.PENDING,
    "in_mediation": PaymentOutcome.PENDING,
    "authorized": PaymentOutcome.PENDING,
}


def map_provider_status(status: Optional[str]) -> PaymentOutcome:
    """Map a payment provider status string to a PaymentOutcome."""
    if not status:
        return PaymentOutcome.PENDING
    return PROVIDER_STATUS_MAP.get(status.strip().lower(), PaymentOutcome.PENDING)


class OrderService:
    """Order intake and payment outcome handling."""

    def __init__(self, db: AsyncSession, manager: StockReservationManager):
        self.db = db
        self.manager = manager

    async def get_order(self, order_id: str) -> Order:
        result = await self.db.execute(select(Order).where(Order.id == order_id))
        order = result.scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found", order_id=order_id)
        return order

    async def place_order(
        self,
        items: Iterable[ItemInput],
        user_ref: Optional[str] = None,
    ) -> Tuple[Order, ReservationResult]:
        """
        Create a pending order and block its stock.

        Must run before any payment preference is created. On failure the
        order is deleted and the error re-raised (InsufficientStockError names
        the product that is short).
        """
        lines = normalize_items(items)
        product_ids = [line.product_id for line in lines]

        result = await self.db.execute(select(Product).where(Product.id.in_(product_ids)))
        products = {p.id: p for p in result.scalars().all()}

        missing = sorted(set(product_ids) - set(products))
        if missing:
            raise ProductNotFoundError(
                f"Products not found: {missing}",
                product_id=missing[0],
                details={"missing": missing},
            )

        order_items = []
        total = 0.0
        for line in lines:
            product = products[line.product_id]
            line_total = product.price * line.quantity
            total += line_total
            order_items.append({
                "product_id": product.id,
                "sku": product.sku,
                "name": product.name,
                "quantity": line.quantity,
                "unit_price": product.price,
                "total_price": line_total,
            })

        order = Order(
            id=str(uuid.uuid4()),
            user_ref=user_ref,
            status=OrderStatus.PENDING,
            items=order_items,
            total_amount=round(total, 2),
        )
        self.db.add(order)
        # The order must exist before its reservation does
        await self.db.commit()

        try:
            reservation = await self.manager.block(lines, order.id)
        except Exception:
            logger.warning(f"Stock block failed for order {order.id}, deleting order")
            await self.db.delete(order)
            await self.db.commit()
            raise

        logger.info(
            f"Order {order.id} placed with {len(order_items)} lines, "
            f"total={order.total_amount}, reservation expires {reservation.expires_at.isoformat()}"
        )
        return order, reservation

    async def apply_payment_outcome(
        self,
        order_id: str,
        outcome: PaymentOutcome,
        payment_id: Optional[str] = None,
    ) -> Tuple[Order, Optional[ReservationResult]]:
        """
        Commit or release the order's stock for a payment notification.

        Safe to call repeatedly for the same outcome.
        """
        order = await self.get_order(order_id)

        if payment_id and not order.payment_id:
            order.payment_id = payment_id

        if outcome == PaymentOutcome.PENDING:
            logger.info(f"Payment for order {order_id} still pending")
            await self.db.commit()
            return order, None

        if outcome == PaymentOutcome.APPROVED:
            reservation = await self.manager.commit(order_id)
            if reservation.is_noop and order.status != OrderStatus.PAID:
                logger.warning(
                    f"Payment approved for order {order_id} (status={order.status}) "
                    f"but no stock reservation remained; oversell risk, review manually"
                )
            if order.status != OrderStatus.PAID:
                order.status = OrderStatus.PAID
                order.paid_at = utcnow()
        else:
            reason = (
                ReleaseReason.PAYMENT_FAILED
                if outcome == PaymentOutcome.REJECTED
                else ReleaseReason.CANCELLED
            )
            reservation = await self.manager.release(order_id, reason=reason)
            if not order.is_terminal:
                order.status = (
                    OrderStatus.PAYMENT_FAILED
                    if outcome == PaymentOutcome.REJECTED
                    else OrderStatus.CANCELLED
                )

        await self.db.commit()
        logger.info(
            f"Payment outcome {outcome.value} applied to order {order_id}: "
            f"order={order.status} reservation={reservation.state.value}"
        )
        return order, reservation

    async def cancel_order(self, order_id: str) -> Tuple[Order, ReservationResult]:
        """Buyer cancelled checkout: release stock, mark a pending order cancelled."""
        order = await self.get_order(order_id)
        reservation = await self.manager.release(order_id, reason=ReleaseReason.CANCELLED)
        if not order.is_terminal:
            order.status = OrderStatus.CANCELLED
        await self.db.commit()
        return order, reservation

    async def get_order_status(self, order_id: str) -> Dict[str, Any]:
        order = await self.get_order(order_id)
        reservation = await self.manager.get_reservation(order_id)
        return {
            "order_id": order.id,
            "status": order.status,
            "payment_id": order.payment_id,
            "total_amount": order.total_amount,
            "reservation": reservation.to_dict(),
        }
