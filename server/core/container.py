"""Dependency injection container for the application."""

import time

from dependency_injector import containers, providers

from core.config import Settings
from core.database import Database
from core.cache import CacheService
from core.storage import InMemoryStorage
from models.auth import utcnow
from services.posts import PostService
from services.user_auth import UserAuthService
from services.users import UserService


class Container(containers.DeclarativeContainer):
    """Application dependency injection container."""

    # Settings
    settings = providers.Singleton(
        Settings,
    )

    # Time sources (overridden in tests)
    clock = providers.Object(utcnow)
    cache_clock = providers.Object(time.time)

    # Storage backend chosen by STORAGE_BACKEND
    storage = providers.Selector(
        settings.provided.storage_backend,
        memory=providers.Singleton(InMemoryStorage, settings=settings),
        database=providers.Singleton(Database, settings=settings),
    )

    cache = providers.Singleton(
        CacheService,
        settings=settings,
        clock=cache_clock
    )

    # Services
    user_auth_service = providers.Singleton(
        UserAuthService,
        storage=storage,
        cache=cache,
        settings=settings,
        clock=clock
    )

    user_service = providers.Factory(
        UserService,
        storage=storage,
        cache=cache
    )

    post_service = providers.Factory(
        PostService,
        storage=storage,
        cache=cache,
        user_service=user_service,
        clock=clock
    )


# Global container instance
container = Container()
