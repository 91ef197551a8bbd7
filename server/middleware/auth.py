"""Bearer-token authentication middleware.

Every request carrying a valid ``Authorization: Bearer <token>`` header gets
``request.state.session`` set. Protected routes without a valid token are
answered with 401 right here; this middleware never raises.
"""

import re
from typing import Optional, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.container import container
from core.errors import UnauthorizedError
from core.logging import get_logger
from models.auth import Session

logger = get_logger(__name__)

# (method, path regex) pairs that require a valid token
PROTECTED_ROUTES: Tuple[Tuple[str, "re.Pattern[str]"], ...] = (
    ("GET", re.compile(r"^/api/auth/me/?$")),
    ("POST", re.compile(r"^/api/auth/logout/?$")),
    ("POST", re.compile(r"^/api/posts/?$")),
    ("DELETE", re.compile(r"^/api/posts/[^/]+/?$")),
)

BEARER_PREFIX = "Bearer "


def extract_bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization")
    if not header or not header.startswith(BEARER_PREFIX):
        return None
    token = header[len(BEARER_PREFIX):].strip()
    return token or None


def is_protected(method: str, path: str) -> bool:
    return any(method == m and pattern.match(path) for m, pattern in PROTECTED_ROUTES)


class AuthMiddleware(BaseHTTPMiddleware):
    """Attach the caller's session and guard protected routes."""

    async def dispatch(self, request: Request, call_next):
        request.state.session = None
        token = extract_bearer_token(request)
        protected = is_protected(request.method, request.url.path)

        if token:
            session = container.user_auth_service().verify_token(token)
            if session is not None:
                request.state.session = session
                logger.debug("Authenticated request", user_id=session.user_id)
            elif protected:
                return self._reject("Invalid or expired token")
        elif protected:
            return self._reject("No token provided")

        return await call_next(request)

    @staticmethod
    def _reject(message: str) -> JSONResponse:
        error = UnauthorizedError(message)
        return JSONResponse(status_code=error.status_code, content=error.to_dict())


def get_current_session(request: Request) -> Session:
    """Route dependency: the authenticated caller's session."""
    session = getattr(request.state, "session", None)
    if session is None:
        raise UnauthorizedError()
    return session


def get_optional_session(request: Request) -> Optional[Session]:
    """Route dependency: the caller's session if a valid token was sent."""
    return getattr(request.state, "session", None)
