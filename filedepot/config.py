"""
Configuration and settings for the file depot service.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    app_title: str = Field(default="File Depot")
    api_prefix: str = Field(default="/api")
    log_level: str = Field(default="INFO")

    # Relational store (Postgres expected, any SQLAlchemy URL works)
    database_url: Optional[str] = Field(default=None)

    # S3-compatible object storage
    s3_endpoint: Optional[str] = Field(default=None)
    s3_region: Optional[str] = Field(default=None)
    s3_bucket: Optional[str] = Field(default=None)
    # Public buckets hand out plain URLs; otherwise downloads use presigned GETs.
    s3_public_base_url: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)
    upload_prefix: str = Field(default="uploads")

    # Sessions (Redis)
    redis_url: Optional[str] = Field(default=None)
    session_key_prefix: str = Field(default="filedepot:session:")
    session_ttl_seconds: int = Field(default=7 * 24 * 3600)
    session_cookie_name: str = Field(default="filedepot_session")

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
