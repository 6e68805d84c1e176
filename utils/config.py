"""
Centralized configuration management with strict validation
"""

import re
from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
import logging

logger = logging.getLogger(__name__)


class Config(BaseSettings):
    """Application configuration with validation"""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        validate_assignment=True,
        extra="ignore",
    )

    # Database
    database_url: str = Field(..., description="SQLAlchemy async database URL")
    store_timeout_seconds: float = Field(5.0, gt=0)

    # Redis (optional: counters and cache fall back to in-process storage)
    redis_url: Optional[str] = Field(None)

    # Identity provider
    jwt_secret: str = Field(...)
    jwt_algorithm: str = Field("HS256")
    jwt_audience: Optional[str] = Field("authenticated")
    jwt_issuer: Optional[str] = Field(None)

    # Field encryption
    comments_encryption_key: str = Field(..., description="64 hex characters (32 bytes)")

    # Application
    environment: str = Field("development")
    log_level: str = Field("INFO")
    port: int = Field(8000)
    sentry_dsn: Optional[str] = Field(None)

    # Rate limiting
    rate_limit_enabled: bool = Field(True)
    rate_limit_read: int = Field(100, ge=1)
    rate_limit_write: int = Field(20, ge=1)
    rate_limit_search: int = Field(30, ge=1)
    rate_limit_bulk: int = Field(5, ge=1)
    rate_limit_window_seconds: int = Field(60, ge=1)
    rate_limit_bulk_window_seconds: int = Field(900, ge=1)
    rate_limit_identity: str = Field("ip")

    # Listing and search
    default_page_size: int = Field(20, ge=1)
    max_page_size: int = Field(100, ge=1)
    min_query_length: int = Field(3, ge=1)
    max_query_length: int = Field(100, ge=1)
    search_candidate_cap: int = Field(1000, ge=1)
    search_cache_ttl_seconds: int = Field(30, ge=0)
    search_cache_max_entries: int = Field(512, ge=1)
    date_bucket_granularity: str = Field("day")

    # Semantic similarity scorer
    semantic_scorer_url: Optional[str] = Field(None)
    semantic_timeout_seconds: float = Field(3.0, gt=0)

    @field_validator('database_url')
    @classmethod
    def validate_database_url(cls, v):
        if not v:
            raise ValueError("DATABASE_URL is required")
        if not v.startswith(('postgresql', 'postgres', 'sqlite')):
            raise ValueError("DATABASE_URL must be a PostgreSQL or SQLite connection string")
        return v

    @field_validator('redis_url')
    @classmethod
    def validate_redis_url(cls, v):
        if v and not v.startswith(('redis://', 'rediss://')):
            raise ValueError("REDIS_URL must be a valid Redis connection string")
        return v or None

    @field_validator('comments_encryption_key')
    @classmethod
    def validate_encryption_key(cls, v):
        if not re.fullmatch(r"[0-9a-fA-F]{64}", v or ""):
            raise ValueError("COMMENTS_ENCRYPTION_KEY must be 64 hex characters (32 bytes)")
        return v

    @field_validator('environment')
    @classmethod
    def validate_environment(cls, v):
        if v not in ['development', 'staging', 'production', 'test']:
            raise ValueError("ENVIRONMENT must be one of: development, staging, production, test")
        return v

    @field_validator('rate_limit_identity')
    @classmethod
    def validate_rate_limit_identity(cls, v):
        if v not in ['ip', 'user', 'both']:
            raise ValueError("RATE_LIMIT_IDENTITY must be one of: ip, user, both")
        return v

    @field_validator('date_bucket_granularity')
    @classmethod
    def validate_granularity(cls, v):
        if v not in ['day', 'week', 'month']:
            raise ValueError("DATE_BUCKET_GRANULARITY must be one of: day, week, month")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache()
def get_config() -> Config:
    """Get cached configuration instance"""
    try:
        return Config()
    except Exception as e:
        raise RuntimeError(f"Configuration validation failed: {str(e)}")
