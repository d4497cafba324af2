"""
Stock Reservation Manager

Holds stock for an order while its payment is in flight:

    NONE --block()--> BLOCKED --commit()--> COMMITTED
                              --release()-> RELEASED

1. block(items, order_id): per line, conditionally add to blocked_stock and
   write a ledger row expiring after STOCK_BLOCK_TTL_MINUTES. All lines or none.
2. commit(order_id): payment succeeded. Claim the order's ledger rows and turn
   them into a permanent deduction (stock_quantity and blocked_stock both drop).
3. release(order_id): payment failed, was cancelled, or the block expired.
   Claim the ledger rows and hand the units back (blocked_stock drops).

COMMITTED and RELEASED both leave the ledger empty, so a late or repeated
commit()/release() finds nothing to claim and returns a no-op result. That is
what makes duplicate webhooks and sweep/webhook races safe.

The manager keeps no state of its own; the StockStore is injected.
"""
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from stockhold.core.config import settings
from stockhold.core.exceptions import (
    StockholdError,
    InsufficientStockError,
    ProductNotFoundError,
    StockIntegrityError,
    InvalidReservationError,
    DuplicateReservationError,
    TransactionFailureError,
)
from stockhold.core.utils import utcnow
from stockhold.services.stock_store import BlockRecord, BlockSummary, StockItem, StockStore

logger = logging.getLogger(__name__)


class ReservationState(str, Enum):
    NONE = "none"
    BLOCKED = "blocked"
    COMMITTED = "committed"
    RELEASED = "released"


class ReleaseReason:
    PAYMENT_FAILED = "payment_failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


@dataclass
class ReservationResult:
    """Outcome of a manager call for one order."""
    order_id: str
    state: ReservationState
    lines: List[BlockRecord] = field(default_factory=list)
    expires_at: Optional[datetime] = None

    @property
    def is_noop(self) -> bool:
        return self.state == ReservationState.NONE

    @property
    def units(self) -> int:
        return sum(line.quantity for line in self.lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "state": self.state.value,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "lines": [
                {"product_id": line.product_id, "quantity": line.quantity}
                for line in self.lines
            ],
        }


ItemInput = Union[StockItem, Mapping[str, Any]]


def normalize_items(items: Iterable[ItemInput]) -> List[StockItem]:
    """
    Validate reservation lines and merge duplicates per product.

    Returns lines sorted by product_id so concurrent transactions lock
    product rows in the same order.
    """
    merged: Dict[int, int] = {}
    for item in items or []:
        if isinstance(item, StockItem):
            product_id, quantity = item.product_id, item.quantity
        else:
            product_id, quantity = item.get("product_id"), item.get("quantity")

        if isinstance(product_id, bool) or not isinstance(product_id, int):
            raise InvalidReservationError(
                f"Invalid product id: {product_id!r}",
                details={"product_id": product_id},
            )
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidReservationError(
                f"Quantity for product {product_id} must be a positive integer",
                details={"product_id": product_id, "quantity": quantity},
            )
        merged[product_id] = merged.get(product_id, 0) + quantity

    if not merged:
        raise InvalidReservationError("No items to reserve")

    return [StockItem(product_id=pid, quantity=qty) for pid, qty in sorted(merged.items())]


class StockReservationManager:
    """Block / commit / release stock against an injected StockStore."""

    def __init__(
        self,
        store: StockStore,
        ttl_minutes: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        if ttl_minutes is None:
            ttl_minutes = settings.STOCK_BLOCK_TTL_MINUTES
        if ttl_minutes <= 0:
            raise ValueError("ttl_minutes must be positive")
        self.store = store
        self.ttl_minutes = ttl_minutes
        self.clock = clock

    @asynccontextmanager
    async def _transaction(self, operation: str, order_id: Optional[str] = None):
        """
        Run a store transaction. Domain errors propagate unchanged; anything
        else is wrapped in TransactionFailureError. Either way the store has
        rolled back before the error leaves this block.
        """
        try:
            async with self.store.transaction() as tx:
                yield tx
        except StockIntegrityError as e:
            logger.error(f"Stock {operation} rolled back for order {order_id}: {e.to_dict()}")
            raise
        except StockholdError as e:
            logger.warning(f"Stock {operation} rejected for order {order_id}: {e.code} {e.message}")
            raise
        except Exception as e:
            logger.error(
                f"Stock {operation} failed for order {order_id}, transaction rolled back: {e}",
                exc_info=True,
            )
            raise TransactionFailureError(
                f"Stock {operation} could not be completed",
                operation=operation,
                order_id=order_id,
            ) from e

    @staticmethod
    def _check_order_id(order_id: Any) -> str:
        if order_id is None or not str(order_id).strip():
            raise InvalidReservationError("An order id is required")
        return str(order_id)

    async def block(self, items: Iterable[ItemInput], order_id: str) -> ReservationResult:
        """
        Reserve every line for order_id, or nothing.

        Raises:
            InvalidReservationError: empty cart, bad quantity or order id
            DuplicateReservationError: order already holds a reservation
            ProductNotFoundError: a product does not exist
            InsufficientStockError: first line (by product id) that cannot be covered
            TransactionFailureError: store failure, rolled back
        """
        order_id = self._check_order_id(order_id)
        lines = normalize_items(items)
        start_time = time.time()
        expires_at = self.clock() + timedelta(minutes=self.ttl_minutes)
        records: List[BlockRecord] = []

        async with self._transaction("block", order_id) as tx:
            if await tx.list_blocks(order_id):
                raise DuplicateReservationError(
                    f"Order {order_id} already holds a stock reservation",
                    order_id=order_id,
                )

            for item in lines:
                if not await tx.try_block(item.product_id, item.quantity):
                    level = await tx.get_stock_level(item.product_id)
                    if level is None:
                        raise ProductNotFoundError(
                            f"Product {item.product_id} not found",
                            product_id=item.product_id,
                        )
                    raise InsufficientStockError(
                        f"Insufficient stock for product {item.product_id} "
                        f"(requested: {item.quantity}, available: {level.available})",
                        product_id=item.product_id,
                        requested_qty=item.quantity,
                        available_qty=level.available,
                    )

                record = BlockRecord(
                    product_id=item.product_id,
                    order_id=order_id,
                    quantity=item.quantity,
                    expires_at=expires_at,
                )
                await tx.add_block(record)
                records.append(record)

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            f"STOCK_METRIC: blocked "
            f"order_id={order_id} "
            f"line_count={len(records)} "
            f"units={sum(r.quantity for r in records)} "
            f"expires_at={expires_at.isoformat()} "
            f"duration_ms={duration_ms:.2f}"
        )

        return ReservationResult(
            order_id=order_id,
            state=ReservationState.BLOCKED,
            lines=records,
            expires_at=expires_at,
        )

    async def commit(self, order_id: str) -> ReservationResult:
        """
        Convert the order's reservation into a permanent deduction.

        No ledger rows (already committed, released, or never blocked) is a
        no-op success.
        """
        order_id = self._check_order_id(order_id)
        start_time = time.time()

        async with self._transaction("commit", order_id) as tx:
            claimed = await tx.claim_blocks(order_id)
            for block in claimed:
                if not await tx.consume_blocked(block.product_id, block.quantity):
                    raise StockIntegrityError(
                        f"Cannot commit {block.quantity} units of product {block.product_id}: "
                        f"counters do not cover the reservation",
                        product_id=block.product_id,
                        order_id=order_id,
                        quantity=block.quantity,
                    )

        if not claimed:
            logger.info(f"No stock reservation to commit for order {order_id}")
            return ReservationResult(order_id=order_id, state=ReservationState.NONE)

        now = self.clock()
        expired = [b for b in claimed if b.expires_at < now]
        if expired:
            logger.warning(
                f"Committed {len(expired)} expired stock blocks for order {order_id}"
            )

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            f"STOCK_METRIC: committed "
            f"order_id={order_id} "
            f"line_count={len(claimed)} "
            f"units={sum(b.quantity for b in claimed)} "
            f"duration_ms={duration_ms:.2f}"
        )
        return ReservationResult(
            order_id=order_id,
            state=ReservationState.COMMITTED,
            lines=claimed,
            expires_at=min(b.expires_at for b in claimed),
        )

    async def release(self, order_id: str, reason: Optional[str] = None) -> ReservationResult:
        """
        Return the order's reserved units to availability.

        No ledger rows is a no-op success. reason is only logged.
        """
        order_id = self._check_order_id(order_id)
        start_time = time.time()

        async with self._transaction("release", order_id) as tx:
            claimed = await tx.claim_blocks(order_id)
            for block in claimed:
                if not await tx.unblock(block.product_id, block.quantity):
                    raise StockIntegrityError(
                        f"Cannot release {block.quantity} units of product {block.product_id}: "
                        f"blocked_stock is lower than the reservation",
                        product_id=block.product_id,
                        order_id=order_id,
                        quantity=block.quantity,
                    )

        if not claimed:
            logger.info(f"No stock reservation to release for order {order_id}")
            return ReservationResult(order_id=order_id, state=ReservationState.NONE)

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            f"STOCK_METRIC: released "
            f"order_id={order_id} "
            f"reason={reason or 'n/a'} "
            f"line_count={len(claimed)} "
            f"units={sum(b.quantity for b in claimed)} "
            f"duration_ms={duration_ms:.2f}"
        )
        return ReservationResult(
            order_id=order_id,
            state=ReservationState.RELEASED,
            lines=claimed,
            expires_at=min(b.expires_at for b in claimed),
        )

    async def get_reservation(self, order_id: str) -> ReservationResult:
        """Read the order's reservation without changing it."""
        order_id = self._check_order_id(order_id)
        async with self._transaction("read", order_id) as tx:
            blocks = await tx.list_blocks(order_id)

        if not blocks:
            return ReservationResult(order_id=order_id, state=ReservationState.NONE)
        return ReservationResult(
            order_id=order_id,
            state=ReservationState.BLOCKED,
            lines=blocks,
            expires_at=min(b.expires_at for b in blocks),
        )

    async def expired_order_ids(self, limit: int, now: Optional[datetime] = None) -> List[str]:
        """Orders holding at least one expired block, oldest expiry first."""
        async with self._transaction("scan") as tx:
            return await tx.expired_order_ids(now or self.clock(), limit)

    async def block_stats(self, now: Optional[datetime] = None, window_minutes: int = 5) -> BlockSummary:
        now = now or self.clock()
        async with self._transaction("stats") as tx:
            return await tx.summarize_blocks(now, now + timedelta(minutes=window_minutes))
