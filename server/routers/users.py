"""Public user profile routes."""

from typing import Optional

from fastapi import APIRouter, Depends

from core.container import container
from services.posts import PostService
from services.users import UserService

router = APIRouter(prefix="/api/users", tags=["users"])


def get_user_service() -> UserService:
    return container.user_service()


def get_post_service() -> PostService:
    return container.post_service()


@router.get("")
async def list_users(users: UserService = Depends(get_user_service)):
    """All users (public profiles)."""
    return await users.get_all()


@router.get("/{user_id}")
async def get_user(user_id: str, users: UserService = Depends(get_user_service)):
    return await users.get_by_id(user_id)


@router.get("/{user_id}/posts")
async def get_user_posts(
    user_id: str,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    order: Optional[str] = None,
    posts: PostService = Depends(get_post_service)
):
    """A user's live posts, newest first unless ``order=ASC``."""
    return await posts.get_by_user_id(user_id, limit=limit, offset=offset, order=order)
