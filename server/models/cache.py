"""In-process cache entry with an absolute expiry."""

import time
from sqlmodel import SQLModel, Field


class CacheEntry(SQLModel):
    """Key-value pair held by the in-memory cache backend.

    The value is kept JSON serialized so a hit hands back a fresh copy and
    behaves exactly like a Redis hit.
    """

    key: str = Field(max_length=512)
    value: str  # JSON serialized
    expires_at: float  # Unix timestamp
    created_at: float = Field(default_factory=time.time)

    def is_expired(self, now: float) -> bool:
        """An entry is logically gone once ``now`` passes ``expires_at``."""
        return now > self.expires_at
