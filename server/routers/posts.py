"""Post feed and CRUD routes."""

from typing import Optional

from fastapi import APIRouter, Depends

from core.container import container
from core.logging import get_logger
from middleware.auth import get_current_session, get_optional_session
from models.auth import ApiModel, Session
from services.posts import PostService

logger = get_logger(__name__)
router = APIRouter(prefix="/api/posts", tags=["posts"])


class CreatePostRequest(ApiModel):
    content: Optional[str] = None


def get_post_service() -> PostService:
    return container.post_service()


@router.get("")
async def get_feed(
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    order: Optional[str] = None,
    session: Optional[Session] = Depends(get_optional_session),
    posts: PostService = Depends(get_post_service)
):
    """Feed of all posts with their authors. Works for guests too."""
    if session:
        logger.debug("Feed requested", user_id=session.user_id)
    return await posts.get_feed(limit=limit, offset=offset, order=order)


@router.get("/{post_id}")
async def get_post(post_id: str, posts: PostService = Depends(get_post_service)):
    return await posts.get_by_id(post_id)


@router.post("", status_code=201)
async def create_post(
    request: CreatePostRequest,
    session: Session = Depends(get_current_session),
    posts: PostService = Depends(get_post_service)
):
    return await posts.create(session.user_id, request.content)


@router.delete("/{post_id}")
async def delete_post(
    post_id: str,
    session: Session = Depends(get_current_session),
    posts: PostService = Depends(get_post_service)
):
    """Soft-delete one of the caller's own posts."""
    await posts.delete_owned(post_id, session.user_id)
    return {"success": True, "message": "Post deleted successfully"}
