#!/usr/bin/env python3
"""
Stockhold - Standalone Stock Sweep Runner

Runs the stock sweep scheduler as its own service, for deployments where the
API process runs with STOCK_SWEEP_ENABLED=false.

    python run_cron.py          # loop every STOCK_SWEEP_INTERVAL_MINUTES
    python run_cron.py --once   # single sweep, print stats, exit

Uses the same database config as the API. Running several of these, or one
next to an API with the sweep enabled, is safe: release() is idempotent.
"""
import argparse
import asyncio
import logging
import signal
import sys

# Setup logging first
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger(__name__)

# Graceful shutdown flag
_shutdown = False


def handle_shutdown(signum, frame):
    """Handle shutdown signals gracefully."""
    global _shutdown
    logger.info(f"Received signal {signum}, initiating graceful shutdown...")
    _shutdown = True


async def main(once: bool = False) -> int:
    """Main entry point for the sweep service."""
    # Deferred so logging is configured before settings load
    from stockhold.jobs.stock_sweep_scheduler import StockSweepScheduler
    from stockhold.services import get_reservation_manager
    from stockhold.services.stock_sweep import get_block_stats

    manager = get_reservation_manager()
    scheduler = StockSweepScheduler(manager)

    if once:
        stats = await scheduler.run_once()
        if stats is None:
            logger.error("Stock sweep failed")
            return 1
        logger.info(f"Sweep complete: {stats}")
        logger.info(f"Current stock block stats: {await get_block_stats(manager)}")
        return 0

    signal.signal(signal.SIGTERM, handle_shutdown)
    signal.signal(signal.SIGINT, handle_shutdown)

    logger.info("=" * 60)
    logger.info("Stockhold Stock Sweep Service")
    logger.info("=" * 60)

    try:
        await scheduler.start()
        while not _shutdown:
            await asyncio.sleep(1)
    finally:
        logger.info("Stopping stock sweep scheduler...")
        await scheduler.stop()
        logger.info("Stock sweep service stopped.")
    return 0


def cli():
    parser = argparse.ArgumentParser(description="Release expired stock blocks")
    parser.add_argument("--once", action="store_true", help="Run a single sweep and exit")
    args = parser.parse_args()

    try:
        sys.exit(asyncio.run(main(once=args.once)))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")


if __name__ == "__main__":
    cli()
