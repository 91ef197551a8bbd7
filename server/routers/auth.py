"""Authentication routes: registration, login, current user and logout."""

from typing import Optional

from fastapi import APIRouter, Depends

from core.container import container
from core.errors import NotFoundError, UnauthorizedError
from core.logging import get_logger
from middleware.auth import get_current_session
from models.auth import ApiModel, SafeUser, Session
from services.user_auth import UserAuthService
from services.users import UserService

logger = get_logger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])


class RegisterRequest(ApiModel):
    email: Optional[str] = None
    password: Optional[str] = None
    display_name: Optional[str] = None


class LoginRequest(ApiModel):
    email: Optional[str] = None
    password: Optional[str] = None


def get_user_auth_service() -> UserAuthService:
    return container.user_auth_service()


def get_user_service() -> UserService:
    return container.user_service()


@router.post("/register", status_code=201)
async def register(
    request: RegisterRequest,
    user_auth: UserAuthService = Depends(get_user_auth_service)
):
    """Register a new account and return it with a session token."""
    return await user_auth.register(
        email=request.email,
        password=request.password,
        display_name=request.display_name
    )


@router.post("/login")
async def login(
    request: LoginRequest,
    user_auth: UserAuthService = Depends(get_user_auth_service)
):
    """
    Login with email and password.
    401 for bad credentials, 423 while the account is locked.
    """
    return await user_auth.authenticate(email=request.email, password=request.password)


@router.get("/me")
async def get_current_user(
    session: Session = Depends(get_current_session),
    users: UserService = Depends(get_user_service)
):
    """Get the authenticated user (includes their email)."""
    try:
        profile = await users.get_by_id(session.user_id)
    except NotFoundError:
        raise UnauthorizedError("User no longer exists")

    return SafeUser(
        id=profile["id"],
        email=session.email,
        display_name=profile["displayName"],
        avatar_url=profile.get("avatarUrl"),
    ).to_json()


@router.post("/logout")
async def logout(session: Session = Depends(get_current_session)):
    """Stateless logout: the client drops its token."""
    logger.info("User logged out", user_id=session.user_id)
    return {"message": "Logged out successfully"}
