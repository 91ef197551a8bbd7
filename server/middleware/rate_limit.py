"""Per-client rate limiting with slowapi.

Every route shares one default limit of RATE_LIMIT_REQUESTS per
RATE_LIMIT_WINDOW seconds, keyed by client IP. Routes decorated with
``limiter.exempt`` (``/health``) are not counted.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from core.config import Settings
from core.errors import RateLimitError
from core.logging import get_logger

logger = get_logger(__name__)


def default_limit(settings: Settings) -> str:
    return f"{settings.rate_limit_requests} per {settings.rate_limit_window} second"


def build_limiter(settings: Settings) -> Limiter:
    """In-memory limiter; disabled entirely when RATE_LIMIT_ENABLED=false."""
    return Limiter(
        key_func=get_remote_address,
        default_limits=[default_limit(settings)],
        enabled=settings.rate_limit_enabled,
        headers_enabled=True,
    )


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 with the standard error body plus X-RateLimit-* and Retry-After headers."""
    logger.warning("Rate limit exceeded", client=get_remote_address(request),
                   path=request.url.path, limit=str(exc.detail))
    error = RateLimitError("Too many requests from this IP, please try again later")
    response = JSONResponse(status_code=error.status_code, content=error.to_dict())
    return request.app.state.limiter._inject_headers(response, request.state.view_rate_limit)


def install_rate_limiting(app: FastAPI, limiter: Limiter) -> None:
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)
