"""
Jobs Package

Background jobs run by the API lifespan or run_cron.py.
"""
from stockhold.jobs.stock_sweep_scheduler import StockSweepScheduler

__all__ = [
    "StockSweepScheduler",
]
