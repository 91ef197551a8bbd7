"""
MicroPost API: FastAPI backend for registration, login, posting and profiles.

Storage, cache and services are wired through the dependency injection
container in ``core.container``.
"""

import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from core.container import container
from core.errors import AppError, InternalError, NotFoundError, ValidationError
from core.health import SERVICE_NAME, SERVICE_VERSION, get_health_status, set_startup_time
from core.logging import configure_logging, get_logger
from middleware.auth import AuthMiddleware
from middleware.rate_limit import build_limiter, install_rate_limiting
from middleware.request_logging import RequestLoggingMiddleware
from routers import auth, posts, users

# Initialize settings and logging
settings = container.settings()
configure_logging(settings)
logger = get_logger(__name__)
limiter = build_limiter(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    logger.info("Starting MicroPost API", environment=settings.environment)
    set_startup_time()

    storage = container.storage()
    cache = container.cache()
    await storage.startup()
    await cache.startup()

    logger.info("Services started successfully", storage=storage.name, cache=cache.backend)
    yield

    await cache.shutdown()
    await storage.shutdown()
    logger.info("Services shutdown complete")


app = FastAPI(
    title="MicroPost API",
    version=SERVICE_VERSION,
    description="Microposting backend with account lockout and cache-aside reads",
    lifespan=lifespan,
    default_response_class=ORJSONResponse
)


# ============================================================================
# Error handling
# ============================================================================

def internal_error_body(exc: Exception) -> dict:
    """500 body: generic in production, detailed otherwise."""
    if settings.is_production:
        return InternalError().to_dict()
    return {
        "error": str(exc) or type(exc).__name__,
        "code": InternalError.code,
        "stack": traceback.format_exc(),
    }


class CatchAllExceptionsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error("Unhandled exception", method=request.method, path=request.url.path,
                         error=f"{type(e).__name__}: {e}", exc_info=True)
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content=internal_error_body(e)
            )


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("Request failed", method=request.method, path=request.url.path,
                     code=exc.code, error=exc.message)
    else:
        logger.info("Request rejected", method=request.method, path=request.url.path,
                    code=exc.code, status_code=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else error.get("msg"))
    error = ValidationError(", ".join(messages) or None)
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        body = NotFoundError().to_dict()
        body["error"] = f"Route {request.method} {request.url.path} not found"
    else:
        body = {"error": str(exc.detail), "code": "HTTP_ERROR"}
    return JSONResponse(status_code=exc.status_code, content=body, headers=exc.headers)


# ============================================================================
# Middleware (last added runs first)
# ============================================================================

app.add_middleware(CatchAllExceptionsMiddleware)
app.add_middleware(AuthMiddleware)

install_rate_limiting(app, limiter)

app.add_middleware(RequestLoggingMiddleware)

logger.info("Configuring CORS middleware", origins=settings.cors_origins)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(users.router)
app.include_router(posts.router)


@app.get("/health")
@limiter.exempt
async def health_check():
    """Detailed health check."""
    return await get_health_status(container.storage(), container.cache(), settings)


@app.get("/")
async def root():
    return {
        "message": "MicroPost API",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "endpoints": {
            "auth": "/api/auth",
            "users": "/api/users",
            "posts": "/api/posts",
            "health": "/health",
        },
    }


if __name__ == "__main__":
    import uvicorn
    logger.info("Starting MicroPost API", host=settings.host, port=settings.port, debug=settings.debug)
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.workers
    )
