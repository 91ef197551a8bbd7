"""Cached public user profile reads."""

from typing import Any, Dict, List

from core.cache import CacheKeys, CacheService
from core.errors import NotFoundError
from core.logging import get_logger
from core.storage import Storage
from models.auth import PublicProfile
from services.validators import require_valid_id

logger = get_logger(__name__)


class UserService:
    """Cache-aside access to public profiles.

    Cached profiles hold no security fields, so login bookkeeping never makes
    them stale and does not invalidate ``user:<id>``.
    """

    def __init__(self, storage: Storage, cache: CacheService):
        self.storage = storage
        self.cache = cache

    async def get_by_id(self, user_id: str) -> Dict[str, Any]:
        """Public profile of a live user. Raises NotFoundError("User")."""
        require_valid_id(user_id, "user")

        async def load() -> Dict[str, Any]:
            user = await self.storage.find_user_by_id(user_id)
            if user is None:
                raise NotFoundError("User")
            return PublicProfile.from_user(user).to_json()

        return await self.cache.get_or_compute(CacheKeys.user(user_id), load)

    async def get_all(self) -> List[Dict[str, Any]]:
        async def load() -> List[Dict[str, Any]]:
            users = await self.storage.find_all_users()
            return [PublicProfile.from_user(u).to_json() for u in users]

        return await self.cache.get_or_compute(CacheKeys.ALL_USERS, load)
