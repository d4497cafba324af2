"""
Stockhold API
FastAPI application entry point

- Checkout routes: order intake, payment webhook, status polling, cancel
- Stock sweep scheduler with heartbeat metrics
- Rate limiting with SlowAPI
- Error sanitization middleware and structured domain errors
- Health endpoint with DB ping and stock block stats
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded

from stockhold import __version__
from stockhold.api.routes import checkout
from stockhold.core.config import settings
from stockhold.core.database import init_models
from stockhold.core.error_handler import ErrorSanitizationMiddleware, stockhold_error_handler
from stockhold.core.exceptions import StockholdError
from stockhold.core.rate_limit import limiter, rate_limit_exceeded_handler
from stockhold.jobs.stock_sweep_scheduler import StockSweepScheduler
from stockhold.services import get_reservation_manager
from stockhold.services.stock_sweep import get_block_stats

logger = logging.getLogger(__name__)

# Background sweep, created in lifespan
stock_sweep_scheduler: Optional[StockSweepScheduler] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Create tables in development and start the stock sweep scheduler.
    """
    global stock_sweep_scheduler

    if settings.ENVIRONMENT == "development":
        await init_models()
        logger.info("Development database tables ensured")

    if settings.STOCK_SWEEP_ENABLED:
        stock_sweep_scheduler = StockSweepScheduler(get_reservation_manager())
        await stock_sweep_scheduler.start()
        logger.info("Stock sweep scheduler ENABLED")
    else:
        logger.info("Stock sweep scheduler DISABLED via config")

    yield

    if stock_sweep_scheduler:
        await stock_sweep_scheduler.stop()


app = FastAPI(
    lifespan=lifespan,
    title="Stockhold API",
    description="Checkout stock reservation: block, commit and release stock around payments.",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {"name": "Health", "description": "Health check and monitoring endpoints"},
        {"name": "checkout", "description": "Order intake and payment outcome handling"},
    ],
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
app.add_exception_handler(StockholdError, stockhold_error_handler)

app.add_middleware(ErrorSanitizationMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(checkout.router, prefix="/api")


@app.get("/", tags=["Health"])
async def root():
    return {"message": "Stockhold API", "status": "operational", "version": __version__}


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check with database ping (via stock block stats) and sweep heartbeat.
    """
    health = {
        "status": "healthy",
        "database": "connected",
        "stock_blocks": None,
        "stock_sweep": {
            "enabled": settings.STOCK_SWEEP_ENABLED,
            "running": bool(stock_sweep_scheduler and stock_sweep_scheduler.running),
            "heartbeat": stock_sweep_scheduler.heartbeat if stock_sweep_scheduler else None,
        },
    }

    try:
        health["stock_blocks"] = await get_block_stats(get_reservation_manager())
    except StockholdError as e:
        logger.error(f"Health check database ping failed: {e.to_dict()}")
        health["status"] = "degraded"
        health["database"] = "unreachable"

    return health


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "stockhold.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
    )
