"""HTTP access logging."""

import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from core.logging import get_logger, log_execution_time

logger = get_logger("http")


class RequestLoggingMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        log_execution_time(
            logger,
            f"{request.method} {request.url.path}",
            start,
            time.perf_counter(),
            status_code=response.status_code,
        )
        return response
