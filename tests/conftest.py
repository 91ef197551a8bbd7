"""
Pytest configuration and shared fixtures for the MicroPost test suite.
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterator

# Set environment variables BEFORE any project imports
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-the-micropost-suite-0123456789"  # pragma: allowlist secret
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["SEED_DEMO_DATA"] = "false"
os.environ["REDIS_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["LOG_FORMAT"] = "console"
os.environ["DEBUG"] = "true"

import pytest
from dependency_injector import providers
from fastapi.testclient import TestClient

from core.cache import CacheService
from core.config import Settings
from core.container import container
from core.storage import InMemoryStorage
from services.posts import PostService
from services.user_auth import UserAuthService
from services.users import UserService

PASSWORD = "password1"


class FakeClock:
    """Controllable time source.

    Starts at the real current time so JWTs it stamps stay verifiable.
    ``now()``/calling returns an aware datetime, ``timestamp()`` a float.
    """

    def __init__(self, start: datetime = None):
        self.current = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def now(self) -> datetime:
        return self.current

    def timestamp(self) -> float:
        return self.current.timestamp()

    def advance(self, **kwargs: Any) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def storage(settings: Settings) -> InMemoryStorage:
    return InMemoryStorage(settings)


@pytest.fixture
def cache(settings: Settings, clock: FakeClock) -> CacheService:
    return CacheService(settings, clock=clock.timestamp)


@pytest.fixture
def auth_service(storage, cache, settings, clock) -> UserAuthService:
    return UserAuthService(storage=storage, cache=cache, settings=settings, clock=clock)


@pytest.fixture
def user_service(storage, cache) -> UserService:
    return UserService(storage=storage, cache=cache)


@pytest.fixture
def post_service(storage, cache, user_service, clock) -> PostService:
    return PostService(storage=storage, cache=cache, user_service=user_service, clock=clock)


@pytest.fixture
def client(clock: FakeClock) -> Iterator[TestClient]:
    """HTTP client against a fresh container (empty memory storage and cache)."""
    from main import app

    container.reset_singletons()
    container.clock.override(providers.Object(clock))
    container.cache_clock.override(providers.Object(clock.timestamp))
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        container.clock.reset_override()
        container.cache_clock.reset_override()
        container.reset_singletons()


def register(client: TestClient, email: str = "ann@example.com", password: str = PASSWORD,
             display_name: str = "Ann") -> Dict[str, Any]:
    """Register through the API and return the response body."""
    response = client.post(
        "/api/auth/register",
        json={"email": email, "password": password, "displayName": display_name},
    )
    assert response.status_code == 201, response.text
    return response.json()


def auth_header(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
