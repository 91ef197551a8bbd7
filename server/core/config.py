"""Environment-driven configuration with Pydantic v2."""

from typing import List, Literal, Optional
from pathlib import Path
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings driven entirely by environment variables."""

    # Server Configuration
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=5000, ge=1024, le=65535)
    debug: bool = Field(default=False)
    workers: int = Field(default=1, ge=1, le=8)

    # Authentication
    jwt_secret_key: str = Field(min_length=32)
    jwt_expire_minutes: int = Field(default=10080, ge=1)  # 7 days
    jwt_issuer: str = Field(default="micropost-api")
    bcrypt_rounds: int = Field(default=12, ge=4, le=16)

    # Account lockout
    max_failed_login_attempts: int = Field(default=5, ge=1, le=100)
    account_lockout_minutes: int = Field(default=15, ge=1)

    # Security
    cors_origins: List[str] = Field(default=["http://localhost:5173"])

    # Storage Configuration
    storage_backend: Literal["memory", "database"] = Field(default="memory")
    database_url: str = Field(default="sqlite+aiosqlite:///./data/micropost.db")
    database_echo: bool = Field(default=False)
    database_pool_size: int = Field(default=20, ge=5, le=100)
    database_max_overflow: int = Field(default=30, ge=10, le=100)
    seed_demo_data: bool = Field(default=True)

    # Cache Configuration
    redis_url: Optional[str] = Field(default=None)
    redis_enabled: bool = Field(default=False)
    cache_ttl: int = Field(default=300, ge=1)
    cache_cleanup_interval: int = Field(default=60, ge=1)  # seconds between expiry sweeps

    # Logging
    log_level: str = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="json")
    log_file: Optional[str] = Field(default=None)

    # Rate Limiting
    rate_limit_enabled: bool = Field(default=True)
    rate_limit_requests: int = Field(default=100, ge=1)
    rate_limit_window: int = Field(default=900, ge=1)  # seconds

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Normalize and reject unknown level names."""
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @property
    def sqlite_path(self) -> Optional[Path]:
        """Filesystem path of a file-backed SQLite database, if any."""
        if self.database_url.startswith("sqlite") and ":///" in self.database_url:
            db_path = self.database_url.split("///", 1)[1]
            if db_path and db_path != ":memory:":
                return Path(db_path)
        return None

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.debug

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return not self.debug

    @property
    def environment(self) -> str:
        return "development" if self.debug else "production"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
        "env_parse_none_str": "none",
    }
