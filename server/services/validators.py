"""Server-side input validation and sanitization."""

import re
from typing import Any, List, NamedTuple, Optional

from core.errors import ValidationError
from models.posts import MAX_POST_LENGTH

MIN_PASSWORD_LENGTH = 8
MIN_DISPLAY_NAME_LENGTH = 2

DEFAULT_PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 100

EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
UUID_REGEX = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


class Pagination(NamedTuple):
    limit: int
    offset: int
    order: str

    @property
    def page(self) -> int:
        return self.offset // self.limit

    @property
    def is_cacheable(self) -> bool:
        """Only default-sized, newest-first, page-aligned reads have a cache key."""
        return (self.limit == DEFAULT_PAGE_LIMIT and self.order == "DESC"
                and self.offset % self.limit == 0)


def is_valid_email(email: Any) -> bool:
    return isinstance(email, str) and EMAIL_REGEX.match(email.strip()) is not None


def is_non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and len(value.strip()) > 0


def is_valid_id(value: Any) -> bool:
    return isinstance(value, str) and UUID_REGEX.match(value) is not None


def sanitize_text(text: Any) -> str:
    """Strip angle brackets and collapse whitespace."""
    if not isinstance(text, str):
        return ""
    text = re.sub(r"[<>]", "", text)
    return re.sub(r"\s+", " ", text).strip()


def clamp(value: int, low: int, high: int) -> int:
    return min(max(value, low), high)


def validate_pagination(limit: Optional[int] = None, offset: Optional[int] = None,
                        order: Optional[str] = None) -> Pagination:
    """Normalize paging input. Limit is clamped; bad offset or order is an error.

    All problems are reported together in one ValidationError.
    """
    errors: List[str] = []

    if offset is not None and offset < 0:
        errors.append("Offset must be a non-negative integer")

    if order is not None and order.upper() not in ("ASC", "DESC"):
        errors.append("Order must be ASC or DESC")

    if errors:
        raise ValidationError(", ".join(errors))

    return Pagination(
        limit=clamp(limit, 1, MAX_PAGE_LIMIT) if limit is not None else DEFAULT_PAGE_LIMIT,
        offset=offset or 0,
        order=order.upper() if order else "DESC",
    )


def validate_registration(email: Any, password: Any, display_name: Any) -> None:
    """Collect every registration problem into a single ValidationError."""
    errors: List[str] = []

    if not is_valid_email(email):
        errors.append("Invalid email format")

    if not is_non_empty_string(password) or len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    if not is_non_empty_string(display_name) or len(display_name.strip()) < MIN_DISPLAY_NAME_LENGTH:
        errors.append(f"Display name must be at least {MIN_DISPLAY_NAME_LENGTH} characters")

    if errors:
        raise ValidationError(", ".join(errors))


def is_valid_login_input(email: Any, password: Any) -> bool:
    return is_valid_email(email) and isinstance(password, str) and len(password) > 0


def validate_post_content(content: Any) -> str:
    """Sanitize and bound-check post content; returns the text to store."""
    sanitized = sanitize_text(content)
    if not sanitized:
        raise ValidationError("Post content cannot be empty")
    if len(sanitized) > MAX_POST_LENGTH:
        raise ValidationError(f"Post content must be at most {MAX_POST_LENGTH} characters")
    return sanitized


def require_valid_id(value: Any, label: str) -> str:
    if not is_valid_id(value):
        raise ValidationError(f"Invalid {label} ID")
    return value
