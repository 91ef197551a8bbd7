"""Post records and their API projections."""

from datetime import datetime
from typing import Optional

from sqlmodel import SQLModel, Field, Column, DateTime

from models.auth import ApiModel, PublicProfile, as_utc, new_id, utcnow

MAX_POST_LENGTH = 280


class Post(SQLModel, table=True):
    """A short post. Soft-deleted rows keep their content."""

    __tablename__ = "posts"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=36)
    author_id: str = Field(foreign_key="users.id", index=True, max_length=36)
    content: str = Field(max_length=MAX_POST_LENGTH)
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True)
    )
    deleted_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True)
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class PostView(ApiModel):
    id: str
    author_id: str
    content: str
    created_at: datetime

    @classmethod
    def from_post(cls, post: Post) -> "PostView":
        return cls(id=post.id, author_id=post.author_id, content=post.content,
                   created_at=as_utc(post.created_at))


class PostWithAuthor(PostView):
    author: PublicProfile
