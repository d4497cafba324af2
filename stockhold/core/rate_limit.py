"""
Rate Limiting Configuration

Uses SlowAPI for in-memory rate limiting (production should use Redis).
Configurable via environment variables.
"""
import logging
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from starlette.requests import Request
from starlette.responses import JSONResponse

from stockhold.core.config import settings

logger = logging.getLogger(__name__)


def get_client_ip(request: Request) -> str:
    """
    Rate limit key for a request.

    The peer address is used unless it is one of TRUSTED_PROXIES. Behind a
    trusted proxy, X-Forwarded-For is read right to left and the first hop
    that is not itself a trusted proxy wins; entries further left are
    client-supplied and ignored.
    """
    peer = get_remote_address(request)
    trusted = settings.TRUSTED_PROXIES
    if peer not in trusted:
        return peer

    forwarded = request.headers.get("X-Forwarded-For")
    if not forwarded:
        return peer

    for hop in reversed([h.strip() for h in forwarded.split(",") if h.strip()]):
        if hop not in trusted:
            return hop
    return peer


# In-memory storage (single instance). For multi-instance deployments:
# limiter = Limiter(key_func=get_client_ip, storage_uri="redis://localhost:6379")
limiter = Limiter(
    key_func=get_client_ip,
    enabled=settings.RATE_LIMIT_ENABLED,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """
    Custom handler for rate limit exceeded errors.
    Returns structured JSON response with retry-after header.
    """
    logger.warning(
        f"Rate limit exceeded: {get_client_ip(request)} on {request.url.path}"
    )

    retry_after = exc.detail.split("per")[0].strip() if exc.detail else "1 minute"

    return JSONResponse(
        status_code=429,
        content={
            "error": "rate_limit_exceeded",
            "message": f"Too many requests. Please try again in {retry_after}.",
            "retry_after": retry_after,
        },
        headers={"Retry-After": "60"},
    )
