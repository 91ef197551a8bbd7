"""Post reads (cache-aside) and writes (transactional, with cache invalidation)."""

import asyncio
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from core.cache import CacheKeys, CacheService
from core.errors import ForbiddenError, NotFoundError
from core.logging import get_logger
from core.storage import Storage
from models.auth import utcnow
from models.posts import Post, PostView, PostWithAuthor
from services.users import UserService
from services.validators import require_valid_id, validate_pagination, validate_post_content

logger = get_logger(__name__)


class PostService:
    """Feed, profile and single-post reads plus create/delete.

    List pages are cached only for the default limit in DESC order at a
    page-aligned offset; any other combination reads storage directly.

    Invalidation rules:
    - create: ``post:<id>``, ``posts:user:<author>:*``, ``posts:feed:*``
    - delete: ``post:<id>``, ``posts:user:<author>:*``, ``posts:feed:*``
    """

    def __init__(self, storage: Storage, cache: CacheService, user_service: UserService,
                 clock: Callable[[], datetime] = utcnow):
        self.storage = storage
        self.cache = cache
        self.user_service = user_service
        self.clock = clock

    async def get_by_user_id(self, user_id: str, limit: Optional[int] = None,
                             offset: Optional[int] = None, order: Optional[str] = None) -> List[Dict[str, Any]]:
        require_valid_id(user_id, "user")
        paging = validate_pagination(limit, offset, order)

        async def load() -> List[Dict[str, Any]]:
            posts = await self.storage.find_posts(
                author_id=user_id, order=paging.order, limit=paging.limit, offset=paging.offset
            )
            return [PostView.from_post(p).to_json() for p in posts]

        if not paging.is_cacheable:
            return await load()
        return await self.cache.get_or_compute(CacheKeys.user_posts(user_id, paging.page), load)

    async def get_feed(self, limit: Optional[int] = None, offset: Optional[int] = None,
                       order: Optional[str] = None) -> List[Dict[str, Any]]:
        """All live posts joined with their author's public profile."""
        paging = validate_pagination(limit, offset, order)

        async def load() -> List[Dict[str, Any]]:
            posts = await self.storage.find_posts(
                order=paging.order, limit=paging.limit, offset=paging.offset
            )
            enriched = await asyncio.gather(*(self._with_author(p) for p in posts))
            return [p for p in enriched if p is not None]

        if not paging.is_cacheable:
            return await load()
        return await self.cache.get_or_compute(CacheKeys.feed(paging.page), load)

    async def get_by_id(self, post_id: str) -> Dict[str, Any]:
        require_valid_id(post_id, "post")

        async def load() -> Dict[str, Any]:
            post = await self.storage.find_post_by_id(post_id)
            if post is None or post.is_deleted:
                raise NotFoundError("Post")
            author = await self.user_service.get_by_id(post.author_id)
            return _with_profile(post, author)

        return await self.cache.get_or_compute(CacheKeys.post(post_id), load)

    async def _with_author(self, post: Post) -> Optional[Dict[str, Any]]:
        try:
            author = await self.user_service.get_by_id(post.author_id)
        except NotFoundError:
            logger.warning("Skipping post with unknown author", post_id=post.id, author_id=post.author_id)
            return None
        return _with_profile(post, author)

    async def create(self, author_id: str, content: Any) -> Dict[str, Any]:
        """Sanitize, validate and store a post for an active author."""
        require_valid_id(author_id, "user")
        sanitized = validate_post_content(content)

        async with self.storage.transaction() as tx:
            if not await tx.user_exists(author_id):
                raise NotFoundError("User")
            post = await tx.insert_post(
                Post(author_id=author_id, content=sanitized, created_at=self.clock())
            )

        await self._invalidate(post.id, author_id)
        logger.info("Post created", post_id=post.id, author_id=author_id)
        return PostView.from_post(post).to_json()

    async def delete_owned(self, post_id: str, user_id: str) -> bool:
        """Soft-delete a post; only its author may do so."""
        require_valid_id(post_id, "post")
        require_valid_id(user_id, "user")

        async with self.storage.transaction() as tx:
            post = await tx.find_post_for_update(post_id)
            if post is None or post.is_deleted:
                raise NotFoundError("Post")
            if post.author_id != user_id:
                raise ForbiddenError("You can only delete your own posts")
            await tx.soft_delete_post(post_id, self.clock())

        await self._invalidate(post_id, user_id)
        logger.info("Post deleted", post_id=post_id, author_id=user_id)
        return True

    async def _invalidate(self, post_id: str, author_id: str) -> None:
        await self.cache.delete(CacheKeys.post(post_id))
        await self.cache.clear_pattern(CacheKeys.user_posts_pattern(author_id))
        await self.cache.clear_pattern(CacheKeys.FEED_PATTERN)


def _with_profile(post: Post, author: Dict[str, Any]) -> Dict[str, Any]:
    view = PostView.from_post(post)
    return PostWithAuthor(**view.model_dump(), author=author).to_json()
