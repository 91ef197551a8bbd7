"""
Contract tests run against both storage backends.
"""

from datetime import timedelta

import pytest

from core.config import Settings
from core.database import Database
from core.errors import ConflictError
from core.storage import DEMO_PASSWORD, InMemoryStorage, build_demo_data
from models.auth import User, utcnow
from models.posts import Post


@pytest.fixture(params=["memory", "database"])
def backend(request, tmp_path):
    """Unstarted storage instance for each backend."""
    if request.param == "memory":
        return InMemoryStorage(Settings(seed_demo_data=False))
    url = f"sqlite+aiosqlite:///{tmp_path / 'storage.db'}"
    return Database(Settings(database_url=url, seed_demo_data=False))


def make_user(email="ann@example.com", name="Ann", created_at=None):
    return User.create(email, "password1", name, rounds=4, created_at=created_at)


class TestUsers:
    @pytest.mark.asyncio
    async def test_create_and_find(self, backend):
        await backend.startup()
        try:
            user = await backend.create_user(make_user())

            by_email = await backend.find_user_by_email("ann@example.com")
            by_id = await backend.find_user_by_id(user.id)

            assert by_email.id == by_id.id == user.id
            assert by_id.failed_login_count == 0
            assert by_id.locked_until is None
        finally:
            await backend.shutdown()

    @pytest.mark.asyncio
    async def test_duplicate_live_email_conflicts(self, backend):
        await backend.startup()
        try:
            await backend.create_user(make_user())

            with pytest.raises(ConflictError):
                await backend.create_user(make_user(name="Other Ann"))
        finally:
            await backend.shutdown()

    @pytest.mark.asyncio
    async def test_soft_deleted_user_is_hidden_and_frees_email(self, backend):
        await backend.startup()
        try:
            user = await backend.create_user(make_user())
            await backend.update_user(user.id, deleted_at=utcnow())

            assert await backend.find_user_by_id(user.id) is None
            assert await backend.find_user_by_email("ann@example.com") is None
            assert await backend.find_all_users() == []
            assert (await backend.count_stats())["users"] == 0

            await backend.create_user(make_user())
        finally:
            await backend.shutdown()

    @pytest.mark.asyncio
    async def test_update_user_fields(self, backend):
        await backend.startup()
        try:
            user = await backend.create_user(make_user())
            until = utcnow() + timedelta(minutes=15)

            updated = await backend.update_user(user.id, failed_login_count=5, locked_until=until)

            assert updated.failed_login_count == 5
            assert updated.is_locked(utcnow())
            assert await backend.update_user("missing-id", failed_login_count=1) is None
            with pytest.raises(AttributeError):
                await backend.update_user(user.id, not_a_field=1)
        finally:
            await backend.shutdown()

    @pytest.mark.asyncio
    async def test_find_all_users_oldest_first(self, backend):
        await backend.startup()
        try:
            now = utcnow()
            await backend.create_user(make_user("new@example.com", "New", created_at=now))
            await backend.create_user(
                make_user("old@example.com", "Old", created_at=now - timedelta(days=1))
            )

            users = await backend.find_all_users()

            assert [u.display_name for u in users] == ["Old", "New"]
        finally:
            await backend.shutdown()


class TestPosts:
    @pytest.mark.asyncio
    async def test_find_posts_order_and_paging(self, backend):
        await backend.startup()
        try:
            author = await backend.create_user(make_user())
            now = utcnow()
            for minutes in range(5):
                await backend.create_post(Post(
                    author_id=author.id,
                    content=f"post {minutes}",
                    created_at=now - timedelta(minutes=minutes),
                ))

            newest = await backend.find_posts(limit=2)
            oldest = await backend.find_posts(order="ASC", limit=2)
            second_page = await backend.find_posts(author_id=author.id, limit=2, offset=2)

            assert [p.content for p in newest] == ["post 0", "post 1"]
            assert [p.content for p in oldest] == ["post 4", "post 3"]
            assert [p.content for p in second_page] == ["post 2", "post 3"]
        finally:
            await backend.shutdown()

    @pytest.mark.asyncio
    async def test_soft_deleted_post_leaves_listings(self, backend):
        await backend.startup()
        try:
            author = await backend.create_user(make_user())
            post = await backend.create_post(Post(author_id=author.id, content="bye"))

            await backend.soft_delete_post(post.id)

            assert await backend.find_posts() == []
            stored = await backend.find_post_by_id(post.id)
            assert stored.is_deleted
            assert stored.content == "bye"
            assert (await backend.count_stats())["active_posts"] == 0
        finally:
            await backend.shutdown()


class TestTransactions:
    @pytest.mark.asyncio
    async def test_commit(self, backend):
        await backend.startup()
        try:
            author = await backend.create_user(make_user())

            async with backend.transaction() as tx:
                assert await tx.user_exists(author.id)
                post = await tx.insert_post(Post(author_id=author.id, content="kept"))

            assert (await backend.find_post_by_id(post.id)).content == "kept"
        finally:
            await backend.shutdown()

    @pytest.mark.asyncio
    async def test_rollback_on_error(self, backend):
        await backend.startup()
        try:
            author = await backend.create_user(make_user())

            with pytest.raises(RuntimeError):
                async with backend.transaction() as tx:
                    post = await tx.insert_post(Post(author_id=author.id, content="gone"))
                    raise RuntimeError("abort")

            assert await backend.find_post_by_id(post.id) is None
            assert await backend.find_posts() == []
        finally:
            await backend.shutdown()

    @pytest.mark.asyncio
    async def test_user_exists_ignores_missing_users(self, backend):
        await backend.startup()
        try:
            async with backend.transaction() as tx:
                assert not await tx.user_exists("00000000-0000-4000-8000-000000000000")
        finally:
            await backend.shutdown()


class TestDemoData:
    def test_build_demo_data(self):
        users, posts = build_demo_data(rounds=4)

        assert [u.email for u in users] == [
            "alice@example.com", "bob@example.com", "charlie@example.com"
        ]
        assert len(posts) == 5
        assert users[0].verify_password(DEMO_PASSWORD)

    @pytest.mark.asyncio
    async def test_startup_seeds_when_enabled(self):
        storage = InMemoryStorage(Settings(seed_demo_data=True))
        await storage.startup()

        stats = await storage.count_stats()

        assert stats == {"users": 3, "posts": 5, "active_posts": 5}
