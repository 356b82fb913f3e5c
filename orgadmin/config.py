"""
Configuration and settings for the admin backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    log_level: str = Field(default="INFO")

    # Database (Postgres expected, any SQLAlchemy URL works)
    database_url: Optional[str] = Field(default=None)

    # S3 object storage
    aws_region: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)
    s3_bucket: Optional[str] = Field(default=None)
    s3_endpoint: Optional[str] = Field(default=None)
    s3_object_acl: Literal["private", "public-read"] = Field(default="private")
    s3_signed_url_ttl: int = Field(default=900, ge=1)
    s3_public_base: Optional[str] = Field(default=None)

    # Team hierarchy
    team_root_id: Optional[str] = Field(default=None)
    team_media_folder: str = Field(default="team_profiles")
    default_media_url: str = Field(default="/defaults/avatar.png")
    tree_build_timeout_seconds: float = Field(default=10.0, gt=0)

    # Uploads
    max_upload_bytes: int = Field(default=10 * 1024 * 1024)
    allowed_image_types: frozenset[str] = Field(
        default=frozenset({"image/jpeg", "image/png", "image/webp", "image/gif"})
    )

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    @property
    def use_public_urls(self) -> bool:
        return self.s3_object_acl == "public-read"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
