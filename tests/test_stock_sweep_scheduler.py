"""
Tests for StockSweepScheduler heartbeat and overlap handling.
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from stockhold.core.exceptions import TransactionFailureError
from stockhold.jobs.stock_sweep_scheduler import StockSweepScheduler


class TestRunOnce:

    @pytest.mark.asyncio
    async def test_heartbeat_updated(self, manager, clock):
        await manager.block([{"product_id": 1, "quantity": 2}], "abandoned")
        clock.advance(minutes=31)
        scheduler = StockSweepScheduler(manager, interval_minutes=1, batch_size=10)

        stats = await scheduler.run_once()

        assert stats["orders_released"] == 1
        assert scheduler.heartbeat["runs"] == 1
        assert scheduler.heartbeat["orders_released"] == 1
        assert scheduler.heartbeat["units_restored"] == 2
        assert scheduler.heartbeat["last_success"] is not None

    @pytest.mark.asyncio
    async def test_overlapping_cycle_skipped(self):
        gate = asyncio.Event()

        async def slow_scan(limit, now=None):
            await gate.wait()
            return []

        manager = MagicMock()
        manager.expired_order_ids = AsyncMock(side_effect=slow_scan)
        scheduler = StockSweepScheduler(manager, interval_minutes=1, batch_size=10)

        first = asyncio.create_task(scheduler.run_once())
        await asyncio.sleep(0)
        skipped = await scheduler.run_once()
        gate.set()
        stats = await first

        assert skipped is None
        assert stats["orders_found"] == 0
        assert scheduler.heartbeat["skipped"] == 1
        assert scheduler.heartbeat["runs"] == 1

    @pytest.mark.asyncio
    async def test_failed_cycle_counted(self):
        manager = MagicMock()
        manager.expired_order_ids = AsyncMock(
            side_effect=TransactionFailureError("db down", operation="scan")
        )
        scheduler = StockSweepScheduler(manager, interval_minutes=1, batch_size=10)

        result = await scheduler.run_once()

        assert result is None
        assert scheduler.heartbeat["errors"] == 1
        assert scheduler.heartbeat["last_run"] is not None
        assert scheduler.heartbeat["last_success"] is None


class TestLoop:

    @pytest.mark.asyncio
    async def test_start_and_stop(self, manager):
        scheduler = StockSweepScheduler(manager, interval_minutes=0.001, batch_size=10)

        await scheduler.start()
        assert scheduler.running
        await asyncio.sleep(0.2)
        await scheduler.stop()

        assert not scheduler.running
        assert scheduler.heartbeat["runs"] >= 1

    @pytest.mark.asyncio
    async def test_start_twice_keeps_one_task(self, manager):
        scheduler = StockSweepScheduler(manager, interval_minutes=1, batch_size=10)

        await scheduler.start()
        task = scheduler._task
        await scheduler.start()

        assert scheduler._task is task
        await scheduler.stop()


class TestConstruction:

    def test_defaults_from_settings(self, manager):
        scheduler = StockSweepScheduler(manager)

        assert scheduler.interval_minutes == 5
        assert scheduler.batch_size == 100

    @pytest.mark.parametrize("kwargs", [
        {"interval_minutes": 0},
        {"interval_minutes": -1},
        {"batch_size": 0},
    ])
    def test_non_positive_values_rejected(self, manager, kwargs):
        with pytest.raises(ValueError):
            StockSweepScheduler(manager, **kwargs)
