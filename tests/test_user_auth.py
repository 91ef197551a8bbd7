"""
Tests for login, account lockout, registration and session tokens.
"""

import asyncio
from datetime import timedelta

import pytest
from jose import jwt

from core.cache import CacheKeys
from core.errors import (
    AccountLockedError,
    ConflictError,
    InvalidCredentialsError,
    ValidationError,
)
from models.auth import UserStatus

from conftest import PASSWORD


async def register_ann(auth_service):
    result = await auth_service.register("Ann@Example.com", PASSWORD, "Ann")
    return result["user"]


class TestRegister:
    @pytest.mark.asyncio
    async def test_returns_safe_user_and_token(self, auth_service):
        result = await auth_service.register("  Ann@Example.com ", PASSWORD, " Ann ")

        user = result["user"]
        assert user["email"] == "ann@example.com"
        assert user["displayName"] == "Ann"
        assert "passwordHash" not in user
        assert auth_service.verify_token(result["token"]).user_id == user["id"]

    @pytest.mark.asyncio
    async def test_new_account_starts_unlocked(self, auth_service, storage):
        user = await register_ann(auth_service)

        stored = await storage.find_user_by_id(user["id"])
        assert stored.status == UserStatus.ACTIVE
        assert stored.failed_login_count == 0
        assert stored.locked_until is None
        assert stored.password_hash != PASSWORD

    @pytest.mark.asyncio
    async def test_duplicate_email_conflicts(self, auth_service):
        await register_ann(auth_service)

        with pytest.raises(ConflictError):
            await auth_service.register("ann@example.com", PASSWORD, "Other")

    @pytest.mark.asyncio
    async def test_invalid_input_reports_every_problem(self, auth_service):
        with pytest.raises(ValidationError) as exc_info:
            await auth_service.register("nope", "123", "")

        assert exc_info.value.message.count(",") == 2

    @pytest.mark.asyncio
    async def test_invalidates_user_list(self, auth_service, cache):
        await cache.set(CacheKeys.ALL_USERS, [])

        await register_ann(auth_service)

        assert await cache.exists(CacheKeys.ALL_USERS) is False


class TestAuthenticate:
    @pytest.mark.asyncio
    async def test_success_with_normalized_email(self, auth_service):
        user = await register_ann(auth_service)

        result = await auth_service.authenticate(" ANN@example.com", PASSWORD)

        assert result["user"]["id"] == user["id"]
        assert result["token"]

    @pytest.mark.asyncio
    async def test_unknown_email_and_wrong_password_look_the_same(self, auth_service):
        await register_ann(auth_service)

        with pytest.raises(InvalidCredentialsError) as unknown:
            await auth_service.authenticate("nobody@example.com", PASSWORD)
        with pytest.raises(InvalidCredentialsError) as wrong:
            await auth_service.authenticate("ann@example.com", "wrong-password")

        assert unknown.value.to_dict() == wrong.value.to_dict()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("email,password", [
        (None, PASSWORD), ("", PASSWORD), ("not-an-email", PASSWORD), ("ann@example.com", ""),
    ])
    async def test_malformed_input_is_invalid_credentials(self, auth_service, email, password):
        with pytest.raises(InvalidCredentialsError):
            await auth_service.authenticate(email, password)

    @pytest.mark.asyncio
    async def test_inactive_account_cannot_log_in(self, auth_service, storage):
        user = await register_ann(auth_service)
        await storage.update_user(user["id"], status=UserStatus.SUSPENDED)

        with pytest.raises(InvalidCredentialsError):
            await auth_service.authenticate("ann@example.com", PASSWORD)


class TestLockout:
    @pytest.mark.asyncio
    async def test_locks_after_max_failures(self, auth_service, storage, settings):
        user = await register_ann(auth_service)

        for _ in range(settings.max_failed_login_attempts):
            with pytest.raises(InvalidCredentialsError):
                await auth_service.authenticate("ann@example.com", "wrong-password")

        with pytest.raises(AccountLockedError):
            await auth_service.authenticate("ann@example.com", PASSWORD)

        stored = await storage.find_user_by_id(user["id"])
        assert stored.failed_login_count == settings.max_failed_login_attempts

    @pytest.mark.asyncio
    async def test_one_below_threshold_still_allows_login(self, auth_service, storage, settings):
        user = await register_ann(auth_service)

        for _ in range(settings.max_failed_login_attempts - 1):
            with pytest.raises(InvalidCredentialsError):
                await auth_service.authenticate("ann@example.com", "wrong-password")

        await auth_service.authenticate("ann@example.com", PASSWORD)

        stored = await storage.find_user_by_id(user["id"])
        assert stored.failed_login_count == 0
        assert stored.locked_until is None

    @pytest.mark.asyncio
    async def test_lock_expires(self, auth_service, clock, settings):
        await register_ann(auth_service)
        for _ in range(settings.max_failed_login_attempts):
            with pytest.raises(InvalidCredentialsError):
                await auth_service.authenticate("ann@example.com", "wrong-password")

        clock.advance(minutes=settings.account_lockout_minutes - 1)
        with pytest.raises(AccountLockedError):
            await auth_service.authenticate("ann@example.com", PASSWORD)

        clock.advance(minutes=1, seconds=1)
        result = await auth_service.authenticate("ann@example.com", PASSWORD)
        assert result["token"]

    @pytest.mark.asyncio
    async def test_concurrent_failures_are_all_counted(self, auth_service, storage, settings):
        user = await register_ann(auth_service)

        attempts = [
            auth_service.authenticate("ann@example.com", "wrong-password")
            for _ in range(settings.max_failed_login_attempts)
        ]
        results = await asyncio.gather(*attempts, return_exceptions=True)

        assert all(isinstance(r, InvalidCredentialsError) for r in results)
        stored = await storage.find_user_by_id(user["id"])
        assert stored.failed_login_count == settings.max_failed_login_attempts
        with pytest.raises(AccountLockedError):
            await auth_service.authenticate("ann@example.com", PASSWORD)

    @pytest.mark.asyncio
    async def test_unknown_email_never_locks_anything(self, auth_service):
        for _ in range(10):
            with pytest.raises(InvalidCredentialsError):
                await auth_service.authenticate("ghost@example.com", "wrong-password")

    @pytest.mark.asyncio
    async def test_profile_cache_survives_lockout_bookkeeping(self, auth_service, user_service, cache):
        user = await register_ann(auth_service)
        await user_service.get_by_id(user["id"])

        with pytest.raises(InvalidCredentialsError):
            await auth_service.authenticate("ann@example.com", "wrong-password")

        assert await cache.exists(CacheKeys.user(user["id"]))


class TestTokens:
    @pytest.mark.asyncio
    async def test_claims(self, auth_service, settings):
        user = await register_ann(auth_service)
        token = (await auth_service.authenticate("ann@example.com", PASSWORD))["token"]

        claims = jwt.get_unverified_claims(token)

        assert claims["sub"] == user["id"]
        assert claims["email"] == "ann@example.com"
        assert claims["iss"] == settings.jwt_issuer
        assert claims["exp"] - claims["iat"] == settings.jwt_expire_minutes * 60

    @pytest.mark.asyncio
    async def test_tampered_token_is_rejected(self, auth_service):
        token = (await auth_service.register("ann@example.com", PASSWORD, "Ann"))["token"]
        header, payload, signature = token.split(".")
        forged = ".".join([header, payload, signature[::-1]])

        assert auth_service.verify_token(forged) is None
        assert auth_service.verify_token("garbage") is None

    @pytest.mark.parametrize("missing", ["iat", "exp"])
    def test_token_without_time_claims_is_rejected(self, auth_service, settings, clock, missing):
        claims = {
            "sub": "someone",
            "email": "x@example.com",
            "iss": settings.jwt_issuer,
            "iat": clock(),
            "exp": clock() + timedelta(minutes=5),
        }
        del claims[missing]
        token = jwt.encode(claims, settings.jwt_secret_key, algorithm="HS256")

        assert auth_service.verify_token(token) is None

    def test_wrong_issuer_is_rejected(self, auth_service, settings):
        token = jwt.encode(
            {"sub": "someone", "email": "x@example.com", "iss": "elsewhere"},
            settings.jwt_secret_key,
            algorithm="HS256",
        )

        assert auth_service.verify_token(token) is None
