"""
Stock Sweep Scheduler

Runs release_expired_blocks() on a fixed interval inside the API process
(started from the FastAPI lifespan) or inside run_cron.py.

Heartbeat metrics are kept for the /health endpoint. A cycle that comes due
while the previous one is still running in this process is skipped; sweeps
running in other processes are safe because release() is idempotent.
"""
import asyncio
import logging
from typing import Optional

from stockhold.core.config import settings
from stockhold.core.utils import utcnow
from stockhold.services.reservation_manager import StockReservationManager
from stockhold.services.stock_sweep import release_expired_blocks

logger = logging.getLogger(__name__)


class StockSweepScheduler:
    """
    Background loop around release_expired_blocks().

    Call start() to begin background scheduling, stop() on shutdown.
    """

    def __init__(
        self,
        manager: StockReservationManager,
        interval_minutes: Optional[float] = None,
        batch_size: Optional[int] = None,
    ):
        if interval_minutes is None:
            interval_minutes = settings.STOCK_SWEEP_INTERVAL_MINUTES
        if batch_size is None:
            batch_size = settings.STOCK_SWEEP_BATCH_SIZE
        if interval_minutes <= 0 or batch_size <= 0:
            raise ValueError("interval_minutes and batch_size must be positive")
        self.manager = manager
        self.interval_minutes = interval_minutes
        self.batch_size = batch_size
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self._run_lock = asyncio.Lock()
        self.heartbeat = {
            "last_run": None,
            "last_success": None,
            "runs": 0,
            "skipped": 0,
            "orders_released": 0,
            "units_restored": 0,
            "errors": 0,
        }

    @property
    def running(self) -> bool:
        return self._running

    async def run_once(self) -> Optional[dict]:
        """
        Run one sweep cycle. Returns the sweep stats, or None when the
        cycle was skipped or failed.
        """
        if self._run_lock.locked():
            self.heartbeat["skipped"] += 1
            logger.warning("Stock sweep still in progress, skipping this cycle")
            return None

        async with self._run_lock:
            self.heartbeat["last_run"] = utcnow().isoformat()
            self.heartbeat["runs"] += 1
            try:
                stats = await release_expired_blocks(self.manager, batch_size=self.batch_size)
            except Exception as e:
                self.heartbeat["errors"] += 1
                logger.error(f"Stock sweep failed: {e}", exc_info=True)
                return None

            self.heartbeat["last_success"] = utcnow().isoformat()
            self.heartbeat["orders_released"] += stats["orders_released"]
            self.heartbeat["units_restored"] += stats["units_restored"]
            self.heartbeat["errors"] += stats["errors"]
            return stats

    async def start(self):
        """Start the sweep loop."""
        if self._running:
            logger.info("Stock sweep scheduler already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            f"Stock sweep scheduler started (interval: {self.interval_minutes} minutes, "
            f"batch size: {self.batch_size})"
        )

    async def stop(self):
        """Stop the sweep loop."""
        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                logger.info("Stock sweep scheduler cancelled")
        self._task = None
        logger.info("Stock sweep scheduler stopped")

    async def _run_loop(self):
        interval_seconds = self.interval_minutes * 60

        while self._running:
            await self.run_once()
            await asyncio.sleep(interval_seconds)
