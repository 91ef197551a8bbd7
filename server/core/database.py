"""Async SQL storage backend with SQLModel and SQLAlchemy 2.0."""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional

from sqlalchemy import func, select as sa_select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlmodel import SQLModel, col, select

from core.config import Settings
from core.errors import ConflictError
from core.logging import get_logger
from core.storage import SortOrder, Storage, StorageTransaction
from models.auth import User, UserStatus, utcnow
from models.posts import Post

logger = get_logger(__name__)


class _DatabaseTransaction(StorageTransaction):
    """Write handle bound to one open session; committed by ``Database.transaction``."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def user_exists(self, user_id: str) -> bool:
        stmt = select(User).where(
            User.id == user_id,
            col(User.deleted_at).is_(None),
            User.status == UserStatus.ACTIVE,
        )
        result = await self.session.execute(stmt)
        return result.scalars().first() is not None

    async def insert_post(self, post: Post) -> Post:
        self.session.add(post)
        await self.session.flush()
        return post

    async def find_post_for_update(self, post_id: str) -> Optional[Post]:
        stmt = select(Post).where(Post.id == post_id).with_for_update()
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def soft_delete_post(self, post_id: str, deleted_at: Optional[datetime] = None) -> None:
        post = await self.session.get(Post, post_id)
        if post is not None:
            post.deleted_at = deleted_at or utcnow()
            await self.session.flush()


class Database(Storage):
    """Async database service with SQLModel."""

    name = "database"

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine = None
        self.async_session = None

    async def startup(self):
        """Initialize database connection and create tables."""
        try:
            sqlite_path = self.settings.sqlite_path
            if sqlite_path:
                sqlite_path.parent.mkdir(parents=True, exist_ok=True)

            engine_options: Dict[str, Any] = {"echo": self.settings.database_echo}
            if not self.settings.database_url.startswith("sqlite"):
                engine_options["pool_size"] = self.settings.database_pool_size
                engine_options["max_overflow"] = self.settings.database_max_overflow

            self.engine = create_async_engine(self.settings.database_url, **engine_options)
            self.async_session = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False
            )

            async with self.engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)

            logger.info("Database initialized successfully")

        except Exception as e:
            logger.error("Database startup failed", error=str(e))
            raise

        if self.settings.seed_demo_data and not await self.find_all_users():
            await self.seed_demo_data(self.settings.bcrypt_rounds)

    async def shutdown(self):
        """Close database connections."""
        if self.engine:
            await self.engine.dispose()
            logger.info("Database connections closed")

    @asynccontextmanager
    async def get_session(self) -> AsyncIterator[AsyncSession]:
        """Get async database session."""
        if not self.async_session:
            raise RuntimeError("Database not initialized")

        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    # ============================================================================
    # Users
    # ============================================================================

    async def find_user_by_email(self, email: str) -> Optional[User]:
        async with self.get_session() as session:
            stmt = select(User).where(User.email == email, col(User.deleted_at).is_(None))
            result = await session.execute(stmt)
            return result.scalars().first()

    async def find_user_by_id(self, user_id: str) -> Optional[User]:
        async with self.get_session() as session:
            stmt = select(User).where(User.id == user_id, col(User.deleted_at).is_(None))
            result = await session.execute(stmt)
            return result.scalars().first()

    async def find_all_users(self) -> List[User]:
        async with self.get_session() as session:
            stmt = (
                select(User)
                .where(col(User.deleted_at).is_(None))
                .order_by(col(User.created_at).asc())
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def create_user(self, user: User) -> User:
        async with self.get_session() as session:
            stmt = select(User).where(User.email == user.email, col(User.deleted_at).is_(None))
            result = await session.execute(stmt)
            if result.scalars().first() is not None:
                raise ConflictError("Email already registered")

            session.add(user)
            await session.commit()
            await session.refresh(user)
            logger.debug("User created", user_id=user.id)
            return user

    async def update_user(self, user_id: str, **changes: Any) -> Optional[User]:
        async with self.get_session() as session:
            user = await session.get(User, user_id)
            if user is None:
                return None

            for field, value in changes.items():
                if field not in User.model_fields:
                    raise AttributeError(f"User has no field {field!r}")
                setattr(user, field, value)

            await session.commit()
            await session.refresh(user)
            logger.debug("User updated", user_id=user_id, fields=sorted(changes))
            return user

    # ============================================================================
    # Posts
    # ============================================================================

    async def find_posts(self, author_id: Optional[str] = None, order: SortOrder = "DESC",
                         limit: int = 20, offset: int = 0) -> List[Post]:
        async with self.get_session() as session:
            stmt = select(Post).where(col(Post.deleted_at).is_(None))
            if author_id is not None:
                stmt = stmt.where(Post.author_id == author_id)

            created = col(Post.created_at)
            stmt = stmt.order_by(created.asc() if order == "ASC" else created.desc())
            stmt = stmt.offset(offset).limit(limit)

            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def find_post_by_id(self, post_id: str) -> Optional[Post]:
        async with self.get_session() as session:
            return await session.get(Post, post_id)

    async def create_post(self, post: Post) -> Post:
        async with self.get_session() as session:
            session.add(post)
            await session.commit()
            await session.refresh(post)
            logger.debug("Post created", post_id=post.id)
            return post

    async def soft_delete_post(self, post_id: str, deleted_at: Optional[datetime] = None) -> None:
        async with self.transaction() as tx:
            await tx.soft_delete_post(post_id, deleted_at)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[StorageTransaction]:
        async with self.get_session() as session:
            try:
                yield _DatabaseTransaction(session)
            except Exception as e:
                logger.warning("Transaction rolled back", error=str(e))
                raise
            await session.commit()

    async def count_stats(self) -> Dict[str, int]:
        async with self.get_session() as session:
            users = await session.execute(
                sa_select(func.count()).select_from(User).where(col(User.deleted_at).is_(None))
            )
            posts = await session.execute(sa_select(func.count()).select_from(Post))
            active = await session.execute(
                sa_select(func.count()).select_from(Post).where(col(Post.deleted_at).is_(None))
            )
            return {
                "users": users.scalar_one(),
                "posts": posts.scalar_one(),
                "active_posts": active.scalar_one(),
            }
