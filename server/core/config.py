"""Environment-driven configuration with Pydantic v2."""

from typing import List, Literal, Optional
from pathlib import Path
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings driven entirely by environment variables."""

    # Server Configuration
    host: str = Field(default="0.0.0.0", env="HOST")
    port: int = Field(default=3010, env="PORT", ge=1024, le=65535)
    debug: bool = Field(default=False, env="DEBUG")
    # Cache and task broadcaster are process-local, so one worker per instance
    workers: int = Field(default=1, env="WORKERS", ge=1, le=8)

    # Session authentication
    jwt_secret_key: str = Field(env="JWT_SECRET_KEY", min_length=32)
    jwt_expire_minutes: int = Field(default=10080, env="JWT_EXPIRE_MINUTES", ge=60)  # 7 days
    jwt_cookie_name: str = Field(default="portal_session", env="JWT_COOKIE_NAME")
    jwt_cookie_secure: bool = Field(default=False, env="JWT_COOKIE_SECURE")  # True in production
    jwt_cookie_samesite: Literal["lax", "strict", "none"] = Field(default="lax", env="JWT_COOKIE_SAMESITE")

    # Security
    cors_origins: List[str] = Field(default=["http://localhost:3000"], env="CORS_ORIGINS")

    # Database Configuration
    database_url: str = Field(default="sqlite+aiosqlite:///./data/portal.db", env="DATABASE_URL")
    database_echo: bool = Field(default=False, env="DATABASE_ECHO")
    database_pool_size: int = Field(default=20, env="DATABASE_POOL_SIZE", ge=5, le=100)
    database_max_overflow: int = Field(default=30, env="DATABASE_MAX_OVERFLOW", ge=10, le=100)

    # Query cache (seconds)
    cache_ttl: int = Field(default=60, env="CACHE_TTL", ge=1)
    cache_cleanup_interval: int = Field(default=300, env="CACHE_CLEANUP_INTERVAL", ge=1)
    users_cache_ttl: int = Field(default=600, env="USERS_CACHE_TTL", ge=1)
    project_tasks_cache_ttl: int = Field(default=120, env="PROJECT_TASKS_CACHE_TTL", ge=1)
    dashboard_cache_ttl: int = Field(default=300, env="DASHBOARD_CACHE_TTL", ge=1)

    # Session cache (seconds)
    session_cache_ttl: int = Field(default=300, env="SESSION_CACHE_TTL", ge=1)
    session_cache_cleanup_interval: int = Field(default=600, env="SESSION_CACHE_CLEANUP_INTERVAL", ge=1)

    # Server-Sent Events (seconds)
    sse_heartbeat_interval: float = Field(default=30.0, env="SSE_HEARTBEAT_INTERVAL", gt=0)
    message_stream_interval: float = Field(default=5.0, env="MESSAGE_STREAM_INTERVAL", gt=0)
    user_status_interval: float = Field(default=30.0, env="USER_STATUS_INTERVAL", gt=0)
    online_window_minutes: int = Field(default=5, env="ONLINE_WINDOW_MINUTES", ge=1)

    # Logging
    log_level: str = Field(default="INFO", env="LOG_LEVEL")
    log_format: str = Field(default="json", env="LOG_FORMAT")
    log_file: Optional[str] = Field(default=None, env="LOG_FILE")

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        """Ensure database directory exists for SQLite."""
        if v and v.startswith("sqlite"):
            if ":///" in v:
                db_path = v.split("///")[1]
                if db_path and db_path != ":memory:":
                    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        return v

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.debug

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return not self.debug

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
        "env_parse_none_str": "none",
        "env_nested_delimiter": "__",
    }
