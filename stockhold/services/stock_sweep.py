"""
Stock Block Sweep Service

Releases reservations whose payment never reported back (e.g. the buyer
closed the payment page). Run every few minutes via StockSweepScheduler or
run_cron.py; reservations live STOCK_BLOCK_TTL_MINUTES.

Each expired order goes through the regular release() path, so a sweep
racing a webhook, or a second sweep, finds the ledger already empty and
does nothing for that order.
"""
import logging
from datetime import datetime
from typing import Optional

from stockhold.core.config import settings
from stockhold.core.exceptions import StockholdError
from stockhold.services.reservation_manager import (
    ReleaseReason,
    StockReservationManager,
)

logger = logging.getLogger(__name__)


async def release_expired_blocks(
    manager: StockReservationManager,
    batch_size: Optional[int] = None,
    now: Optional[datetime] = None,
) -> dict:
    """
    Release up to batch_size orders whose stock blocks have expired.

    Returns:
        dict with counts of released orders, blocks, units and errors
    """
    stats = {
        "orders_found": 0,
        "orders_released": 0,
        "blocks_released": 0,
        "units_restored": 0,
        "errors": 0,
    }
    limit = settings.STOCK_SWEEP_BATCH_SIZE if batch_size is None else batch_size
    if limit <= 0:
        raise ValueError("batch_size must be positive")

    order_ids = await manager.expired_order_ids(limit, now=now)
    stats["orders_found"] = len(order_ids)

    if not order_ids:
        logger.debug("No expired stock blocks to release")
        return stats

    for order_id in order_ids:
        try:
            result = await manager.release(order_id, reason=ReleaseReason.EXPIRED)
        except StockholdError as e:
            # Keep sweeping; the order is picked up again next cycle
            logger.error(f"Error releasing expired stock for order {order_id}: {e.to_dict()}")
            stats["errors"] += 1
            continue

        if result.is_noop:
            continue
        stats["orders_released"] += 1
        stats["blocks_released"] += len(result.lines)
        stats["units_restored"] += result.units

    if stats["orders_released"] > 0:
        logger.info(
            f"Released {stats['blocks_released']} expired stock blocks across "
            f"{stats['orders_released']} orders, restored {stats['units_restored']} units"
        )

    return stats


async def get_block_stats(manager: StockReservationManager) -> dict:
    """
    Get current stock block statistics for monitoring.
    """
    summary = await manager.block_stats()
    return {
        "total_blocks": summary.total,
        "active_blocks": summary.active,
        "expired_blocks": summary.expired,
        "expiring_within_5min": summary.expiring_soon,
    }
