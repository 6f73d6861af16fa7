"""
Configuration and settings for the AURA backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings; every field reads `AURA_<FIELD_NAME>`."""

    model_config = SettingsConfigDict(
        env_prefix="AURA_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")

    # Development toggle: forces every collaborator to its in-memory client.
    use_in_memory_backends: bool = Field(default=False)

    # Document store
    store_backend: Literal["memory", "sql", "firestore"] = Field(default="memory")
    database_url: Optional[str] = Field(default=None)

    # Firebase (Firestore, Auth, Cloud Messaging)
    firebase_project_id: Optional[str] = Field(default=None)
    firebase_web_api_key: Optional[str] = Field(default=None)
    auth_backend: Literal["memory", "firebase"] = Field(default="memory")
    push_backend: Literal["memory", "fcm"] = Field(default="memory")

    # S3-compatible object storage
    s3_endpoint: Optional[str] = Field(default=None)
    s3_region: Optional[str] = Field(default=None)
    s3_bucket: Optional[str] = Field(default=None)
    s3_public_base_url: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)

    # Redis (push queue and change events)
    redis_url: Optional[str] = Field(default=None)
    redis_queue_key: str = Field(default="aura:push")
    redis_changes_channel: str = Field(default="aura:changes")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
