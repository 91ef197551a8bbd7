"""User authentication service: credential checks, account lockout and JWT handling."""

import asyncio
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from jose import jwt, JWTError

from core.cache import CacheKeys, CacheService
from core.config import Settings
from core.errors import AccountLockedError, InvalidCredentialsError
from core.logging import get_logger
from core.storage import Storage
from models.auth import (
    SafeUser,
    Session,
    User,
    UserStatus,
    dummy_password_hash,
    normalize_email,
    utcnow,
    verify_password,
)
from services.validators import is_valid_login_input, validate_registration

logger = get_logger(__name__)


class UserAuthService:
    """Handles authentication, registration and session tokens.

    Lockout: every failed attempt against an existing account bumps
    ``failed_login_count``; reaching ``max_failed_login_attempts`` sets
    ``locked_until`` to now + ``account_lockout_minutes``. While locked, every
    attempt fails with AccountLockedError, whatever the password. A success
    resets both fields.

    The counter update is a read-modify-write across awaits, so it runs under
    a per-user lock held by this (singleton) service.
    """

    def __init__(self, storage: Storage, cache: CacheService, settings: Settings,
                 clock: Callable[[], datetime] = utcnow):
        self.storage = storage
        self.cache = cache
        self.settings = settings
        self.clock = clock
        self._algorithm = "HS256"
        self._user_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def lockout_duration(self) -> timedelta:
        return timedelta(minutes=self.settings.account_lockout_minutes)

    async def authenticate(self, email: Any, password: Any) -> Dict[str, Any]:
        """Verify credentials and return ``{"user": SafeUser, "token": str}``.

        Unknown emails still pay for a bcrypt comparison against a dummy hash
        and fail exactly like a wrong password.
        """
        if not is_valid_login_input(email, password):
            raise InvalidCredentialsError()

        normalized = normalize_email(email)
        user = await self.storage.find_user_by_email(normalized)

        password_hash = user.password_hash if user else dummy_password_hash(self.settings.bcrypt_rounds)
        password_ok = verify_password(password, password_hash)

        if user and user.is_locked(self.clock()):
            logger.warning("Login attempt on locked account", email=normalized)
            raise AccountLockedError()

        if not user or user.status != UserStatus.ACTIVE or not password_ok:
            if user:
                await self.record_failed_login(user.id)
            logger.warning("Failed login attempt", email=normalized)
            raise InvalidCredentialsError()

        await self.reset_failed_login(user.id)
        logger.info("User logged in", user_id=user.id)
        return self._session_payload(user)

    async def register(self, email: Any, password: Any, display_name: Any) -> Dict[str, Any]:
        """Create an ACTIVE account and sign the new user in."""
        validate_registration(email, password, display_name)

        user = User.create(
            email=email,
            password=password,
            display_name=display_name,
            rounds=self.settings.bcrypt_rounds,
            created_at=self.clock(),
        )
        # Storage re-checks the live-email uniqueness and raises ConflictError
        user = await self.storage.create_user(user)

        await self.cache.delete(CacheKeys.ALL_USERS)

        logger.info("User registered", user_id=user.id)
        return self._session_payload(user)

    async def record_failed_login(self, user_id: str) -> Optional[User]:
        """Increment the failure counter and lock the account at the threshold."""
        async with self._user_locks[user_id]:
            user = await self.storage.find_user_by_id(user_id)
            if user is None:
                return None

            new_count = user.failed_login_count + 1
            changes: Dict[str, Any] = {"failed_login_count": new_count}

            if new_count >= self.settings.max_failed_login_attempts:
                changes["locked_until"] = self.clock() + self.lockout_duration
                logger.warning("Account locked after repeated failures",
                               user_id=user_id, failed_attempts=new_count)

            return await self.storage.update_user(user_id, **changes)

    async def reset_failed_login(self, user_id: str) -> Optional[User]:
        async with self._user_locks[user_id]:
            return await self.storage.update_user(user_id, failed_login_count=0, locked_until=None)

    # ============================================================================
    # Tokens
    # ============================================================================

    def create_access_token(self, user: User) -> str:
        """Create a signed JWT for the user."""
        issued_at = self.clock()
        payload = {
            "sub": user.id,
            "email": user.email,
            "iss": self.settings.jwt_issuer,
            "iat": issued_at,
            "exp": issued_at + timedelta(minutes=self.settings.jwt_expire_minutes),
        }
        return jwt.encode(payload, self.settings.jwt_secret_key, algorithm=self._algorithm)

    def verify_token(self, token: str) -> Optional[Session]:
        """Verify a JWT and return its session; None if invalid or expired."""
        try:
            payload = jwt.decode(
                token,
                self.settings.jwt_secret_key,
                algorithms=[self._algorithm],
                issuer=self.settings.jwt_issuer,
                options={"require_iat": True, "require_exp": True},
            )
        except JWTError as e:
            logger.debug("Token verification failed", error=str(e))
            return None

        user_id, email = payload.get("sub"), payload.get("email")
        if not user_id or not email:
            return None

        return Session(
            user_id=user_id,
            email=email,
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )

    def _session_payload(self, user: User) -> Dict[str, Any]:
        return {
            "user": SafeUser.from_user(user).to_json(),
            "token": self.create_access_token(user),
        }
