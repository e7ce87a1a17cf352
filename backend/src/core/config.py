"""Application configuration using pydantic-settings."""
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MIN_JWT_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    app_name: str = Field(default="mobile-auth", validation_alias="APP_NAME")

    # Database - primary (writes) and optional replica (reads)
    database_url: str = Field(validation_alias="DATABASE_URL")
    database_read_url: str | None = Field(default=None, validation_alias="DATABASE_READ_URL")

    # Pool tuning - reads fan out wider than writes
    db_read_pool_size: int = Field(default=15, validation_alias="DB_READ_POOL_SIZE")
    db_write_pool_size: int = Field(default=10, validation_alias="DB_WRITE_POOL_SIZE")
    db_max_overflow: int = Field(default=5, validation_alias="DB_MAX_OVERFLOW")
    db_pool_timeout: float = Field(default=5.0, validation_alias="DB_POOL_TIMEOUT")
    db_pool_recycle: int = Field(default=1800, validation_alias="DB_POOL_RECYCLE")
    db_connect_timeout: float = Field(default=5.0, validation_alias="DB_CONNECT_TIMEOUT")
    db_command_timeout: float = Field(default=45.0, validation_alias="DB_COMMAND_TIMEOUT")
    # "on" waits for the local WAL flush; "remote_apply" also waits for synchronous standbys
    db_write_synchronous_commit: str = Field(
        default="on", validation_alias="DB_WRITE_SYNCHRONOUS_COMMIT",
    )
    db_connect_retries: int = Field(default=5, validation_alias="DB_CONNECT_RETRIES")
    db_connect_retry_delay: float = Field(default=5.0, validation_alias="DB_CONNECT_RETRY_DELAY")

    # Tokens
    jwt_secret: str = Field(validation_alias="JWT_SECRET")
    jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=15, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )
    refresh_token_expire_days: int = Field(default=7, validation_alias="REFRESH_TOKEN_EXPIRE_DAYS")
    password_reset_expire_hours: int = Field(
        default=1, validation_alias="PASSWORD_RESET_EXPIRE_HOURS",
    )
    email_verification_expire_hours: int = Field(
        default=24, validation_alias="EMAIL_VERIFICATION_EXPIRE_HOURS",
    )
    bcrypt_rounds: int = Field(default=10, ge=4, le=16, validation_alias="BCRYPT_ROUNDS")

    # Redis - for response caching, rate limiting and outbound events
    redis_url: str = Field(default="redis://localhost:6379", validation_alias="REDIS_URL")
    redis_enabled: bool = Field(default=True, validation_alias="REDIS_ENABLED")
    redis_pool_size: int = Field(default=20, validation_alias="REDIS_POOL_SIZE")

    cache_enabled: bool = Field(default=True, validation_alias="CACHE_ENABLED")
    me_cache_ttl: int = Field(default=120, validation_alias="ME_CACHE_TTL")
    user_cache_ttl: int = Field(default=300, validation_alias="USER_CACHE_TTL")

    events_enabled: bool = Field(default=True, validation_alias="EVENTS_ENABLED")
    events_queue_prefix: str = Field(default="queue", validation_alias="EVENTS_QUEUE_PREFIX")

    rate_limit_enabled: bool = Field(default=True, validation_alias="RATE_LIMIT_ENABLED")

    # Base URL used in links placed into outbound emails
    app_url: str = Field(default="http://localhost:3000", validation_alias="APP_URL")

    # CORS - comma-separated list of allowed origins (stored as string, parsed via property)
    cors_origins_str: str = Field(
        default="http://localhost:3000",
        validation_alias="CORS_ORIGINS",
    )

    @model_validator(mode="after")
    def validate_jwt_secret(self) -> "Settings":
        """
        Reject weak signing secrets.

        Access tokens are HMAC-signed with this value, so a short secret makes
        every issued token forgeable.
        """
        if len(self.jwt_secret) < MIN_JWT_SECRET_LENGTH:
            raise ValueError(
                f"JWT_SECRET must be at least {MIN_JWT_SECRET_LENGTH} characters long.",
            )
        return self

    @property
    def read_database_url(self) -> str:
        """URL for the read pool; falls back to the primary when no replica is configured."""
        return self.database_read_url or self.database_url

    @property
    def cors_origins(self) -> list[str]:
        """Parse comma-separated CORS origins string into a list."""
        if not self.cors_origins_str:
            return []
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
