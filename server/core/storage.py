"""Storage contract and the in-memory implementation.

Services talk to users and posts only through :class:`Storage`. Two
implementations exist: :class:`InMemoryStorage` (tests, demos) and the
SQLModel-backed :class:`core.database.Database`.
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any, AsyncIterator, Dict, List, Literal, Optional, Tuple

from core.config import Settings
from core.errors import ConflictError
from core.logging import get_logger
from models.auth import User, UserStatus, utcnow
from models.posts import Post

logger = get_logger(__name__)

SortOrder = Literal["ASC", "DESC"]

DEMO_PASSWORD = "password123"


class StorageTransaction(ABC):
    """Restricted write handle available inside ``Storage.transaction()``."""

    @abstractmethod
    async def user_exists(self, user_id: str) -> bool:
        """True for a non-deleted ACTIVE user."""

    @abstractmethod
    async def insert_post(self, post: Post) -> Post:
        ...

    @abstractmethod
    async def find_post_for_update(self, post_id: str) -> Optional[Post]:
        ...

    @abstractmethod
    async def soft_delete_post(self, post_id: str, deleted_at: Optional[datetime] = None) -> None:
        ...


class Storage(ABC):
    """Single authority over user and post records.

    Records handed out are copies (or detached rows); mutating them has no
    effect until passed back through ``update_user`` and friends.
    """

    name: str = "abstract"

    async def startup(self) -> None:
        """Open connections, create schema, seed demo data."""

    async def shutdown(self) -> None:
        """Release connections."""

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    @abstractmethod
    async def find_user_by_email(self, email: str) -> Optional[User]:
        """Look up a non-deleted user by normalized email."""

    @abstractmethod
    async def find_user_by_id(self, user_id: str) -> Optional[User]:
        """Look up a non-deleted user by id."""

    @abstractmethod
    async def find_all_users(self) -> List[User]:
        """All non-deleted users, oldest first."""

    @abstractmethod
    async def create_user(self, user: User) -> User:
        """Persist a new user. Raises ConflictError on a duplicate live email."""

    @abstractmethod
    async def update_user(self, user_id: str, **changes: Any) -> Optional[User]:
        """Apply a partial patch; returns the updated record or None."""

    # ------------------------------------------------------------------
    # Posts
    # ------------------------------------------------------------------

    @abstractmethod
    async def find_posts(self, author_id: Optional[str] = None, order: SortOrder = "DESC",
                         limit: int = 20, offset: int = 0) -> List[Post]:
        """Non-deleted posts ordered by ``created_at``, paginated."""

    @abstractmethod
    async def find_post_by_id(self, post_id: str) -> Optional[Post]:
        """Fetch a post by id, soft-deleted or not."""

    @abstractmethod
    async def create_post(self, post: Post) -> Post:
        ...

    @abstractmethod
    async def soft_delete_post(self, post_id: str, deleted_at: Optional[datetime] = None) -> None:
        ...

    @abstractmethod
    def transaction(self):
        """Async context manager yielding a :class:`StorageTransaction`.

        Writes made through the handle are undone if the block raises.
        """

    @abstractmethod
    async def count_stats(self) -> Dict[str, int]:
        ...

    async def seed_demo_data(self, rounds: int) -> None:
        """Load the demo users and posts into an empty store."""
        users, posts = build_demo_data(rounds)
        for user in users:
            await self.create_user(user)
        for post in posts:
            await self.create_post(post)
        logger.info("Storage seeded with demo data", backend=self.name,
                    users=len(users), posts=len(posts))


def build_demo_data(rounds: int, now: Optional[datetime] = None) -> Tuple[List[User], List[Post]]:
    """Three demo accounts (password ``password123``) and five posts."""
    now = now or utcnow()
    accounts = [
        ("alice@example.com", "Alice Chen", 30),
        ("bob@example.com", "Bob Smith", 25),
        ("charlie@example.com", "Charlie Davis", 20),
    ]
    users = [
        User.create(email, DEMO_PASSWORD, name, rounds=rounds,
                    created_at=now - timedelta(days=age_days))
        for email, name, age_days in accounts
    ]
    alice, bob, charlie = users
    entries = [
        (alice, "Just deployed my first microservice! The architecture is clean and scalable.", 2),
        (bob, "Type hints + FastAPI is such a powerful combination for building modern web APIs.", 5),
        (alice, "Remember: Clean code is not about making code shorter, it's about making it clearer.", 24),
        (charlie, 'Just finished reading "Clean Architecture" by Robert Martin. Highly recommended!', 48),
        (bob, "Cache invalidation and naming things - the two hardest problems in computer science.", 72),
    ]
    posts = [
        Post(author_id=author.id, content=content, created_at=now - timedelta(hours=age_hours))
        for author, content, age_hours in entries
    ]
    return users, posts


def _copy(record):
    """Detached copy of a record so callers never alias stored state."""
    return type(record)(**record.model_dump())


class _MemoryTransaction(StorageTransaction):

    def __init__(self, storage: "InMemoryStorage"):
        self._storage = storage

    async def user_exists(self, user_id: str) -> bool:
        user = self._storage._users.get(user_id)
        return user is not None and user.deleted_at is None and user.status == UserStatus.ACTIVE

    async def insert_post(self, post: Post) -> Post:
        return await self._storage.create_post(post)

    async def find_post_for_update(self, post_id: str) -> Optional[Post]:
        return await self._storage.find_post_by_id(post_id)

    async def soft_delete_post(self, post_id: str, deleted_at: Optional[datetime] = None) -> None:
        await self._storage.soft_delete_post(post_id, deleted_at)


class InMemoryStorage(Storage):
    """Dict-backed storage.

    ``transaction()`` snapshots both tables and restores them if the block
    raises. It offers no isolation: concurrent readers see in-progress writes.
    """

    name = "memory"

    def __init__(self, settings: Settings):
        self.settings = settings
        self._users: Dict[str, User] = {}
        self._posts: Dict[str, Post] = {}

    async def startup(self) -> None:
        if self.settings.seed_demo_data and not self._users:
            await self.seed_demo_data(self.settings.bcrypt_rounds)
        logger.info("In-memory storage ready", users=len(self._users), posts=len(self._posts))

    async def shutdown(self) -> None:
        self._users.clear()
        self._posts.clear()

    async def find_user_by_email(self, email: str) -> Optional[User]:
        for user in self._users.values():
            if user.email == email and user.deleted_at is None:
                return _copy(user)
        return None

    async def find_user_by_id(self, user_id: str) -> Optional[User]:
        user = self._users.get(user_id)
        if user is None or user.deleted_at is not None:
            return None
        return _copy(user)

    async def find_all_users(self) -> List[User]:
        users = [u for u in self._users.values() if u.deleted_at is None]
        return [_copy(u) for u in sorted(users, key=lambda u: u.created_at)]

    async def create_user(self, user: User) -> User:
        for existing in self._users.values():
            if existing.email == user.email and existing.deleted_at is None:
                raise ConflictError("Email already registered")
        self._users[user.id] = _copy(user)
        logger.debug("User created", user_id=user.id)
        return _copy(user)

    async def update_user(self, user_id: str, **changes: Any) -> Optional[User]:
        user = self._users.get(user_id)
        if user is None:
            return None
        for field, value in changes.items():
            if field not in User.model_fields:
                raise AttributeError(f"User has no field {field!r}")
            setattr(user, field, value)
        logger.debug("User updated", user_id=user_id, fields=sorted(changes))
        return _copy(user)

    async def find_posts(self, author_id: Optional[str] = None, order: SortOrder = "DESC",
                         limit: int = 20, offset: int = 0) -> List[Post]:
        posts = [
            p for p in self._posts.values()
            if p.deleted_at is None and (author_id is None or p.author_id == author_id)
        ]
        posts.sort(key=lambda p: p.created_at, reverse=(order == "DESC"))
        return [_copy(p) for p in posts[offset:offset + limit]]

    async def find_post_by_id(self, post_id: str) -> Optional[Post]:
        post = self._posts.get(post_id)
        return _copy(post) if post else None

    async def create_post(self, post: Post) -> Post:
        self._posts[post.id] = _copy(post)
        logger.debug("Post created", post_id=post.id)
        return _copy(post)

    async def soft_delete_post(self, post_id: str, deleted_at: Optional[datetime] = None) -> None:
        post = self._posts.get(post_id)
        if post is not None:
            post.deleted_at = deleted_at or utcnow()
            logger.debug("Post soft-deleted", post_id=post_id)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[StorageTransaction]:
        users_snapshot = {k: _copy(v) for k, v in self._users.items()}
        posts_snapshot = {k: _copy(v) for k, v in self._posts.items()}
        try:
            yield _MemoryTransaction(self)
        except Exception as e:
            self._users = users_snapshot
            self._posts = posts_snapshot
            logger.warning("Transaction rolled back", error=str(e))
            raise

    async def count_stats(self) -> Dict[str, int]:
        return {
            "users": sum(1 for u in self._users.values() if u.deleted_at is None),
            "posts": len(self._posts),
            "active_posts": sum(1 for p in self._posts.values() if p.deleted_at is None),
        }
