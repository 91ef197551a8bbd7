"""User account models, password hashing and session projections."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from functools import lru_cache
from typing import Optional
from urllib.parse import quote

import bcrypt
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlmodel import SQLModel, Field, Column, DateTime

AVATAR_URL_TEMPLATE = "https://api.dicebear.com/7.x/avataaars/svg?seed={seed}"

# bcrypt only looks at the first 72 bytes of the secret
BCRYPT_MAX_BYTES = 72


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(password: str, rounds: int = 12) -> str:
    """Hash a password using bcrypt."""
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(_password_bytes(password), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Verify password against a stored hash; malformed hashes never match."""
    try:
        return bcrypt.checkpw(_password_bytes(password), password_hash.encode("utf-8"))
    except ValueError:
        return False


@lru_cache(maxsize=None)
def dummy_password_hash(rounds: int) -> str:
    """Well-formed hash compared against when no account matches an email."""
    return hash_password(f"dummy-{uuid.uuid4()}", rounds=rounds)


class UserStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"


class User(SQLModel, table=True):
    """User account record."""

    __tablename__ = "users"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=36)
    email: str = Field(index=True, max_length=255)  # unique among non-deleted rows
    display_name: str = Field(max_length=100)
    avatar_url: Optional[str] = Field(default=None, max_length=512)
    password_hash: str = Field(max_length=255)
    status: UserStatus = Field(default=UserStatus.ACTIVE)
    failed_login_count: int = Field(default=0, ge=0)
    locked_until: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )
    deleted_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True)
    )

    def verify_password(self, password: str) -> bool:
        """Verify password against stored hash."""
        return verify_password(password, self.password_hash)

    def is_locked(self, now: datetime) -> bool:
        """True while ``locked_until`` lies in the future."""
        return self.locked_until is not None and as_utc(self.locked_until) > now

    @classmethod
    def create(cls, email: str, password: str, display_name: str,
               rounds: int = 12, created_at: Optional[datetime] = None) -> "User":
        """Factory method to create an active user with a hashed password."""
        display_name = display_name.strip()
        return cls(
            id=new_id(),
            email=normalize_email(email),
            display_name=display_name,
            avatar_url=AVATAR_URL_TEMPLATE.format(seed=quote(display_name)),
            password_hash=hash_password(password, rounds=rounds),
            status=UserStatus.ACTIVE,
            failed_login_count=0,
            locked_until=None,
            created_at=created_at or utcnow(),
            deleted_at=None,
        )


def normalize_email(email: str) -> str:
    return email.lower().strip()


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; they are stored as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ============================================================================
# API projections
# ============================================================================

class ApiModel(BaseModel):
    """Base for response/request bodies: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class SafeUser(ApiModel):
    """The account owner's own view: includes the email, never the hash."""

    id: str
    email: str
    display_name: str
    avatar_url: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "SafeUser":
        return cls(id=user.id, email=user.email, display_name=user.display_name,
                   avatar_url=user.avatar_url)


class PublicProfile(ApiModel):
    """What everyone else may see about a user."""

    id: str
    display_name: str
    avatar_url: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "PublicProfile":
        return cls(id=user.id, display_name=user.display_name,
                   avatar_url=user.avatar_url, created_at=as_utc(user.created_at))


class Session(BaseModel):
    """Decoded bearer token. Never persisted."""

    user_id: str
    email: str
    issued_at: datetime
    expires_at: datetime
