"""
Configuration settings for recordseed.

Uses Pydantic Settings to load environment variables (and an optional `.env`
file) for the remote store connection, logging, and load-run defaults.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Remote store
    sf_instance_url: str = Field("", alias="SF_INSTANCE_URL")
    sf_access_token: str = Field("", alias="SF_ACCESS_TOKEN")
    sf_api_version: str = Field("59.0", alias="SF_API_VERSION")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Load run defaults
    logs_dir: Path = Field(Path("logs"), alias="SEED_LOGS_DIR")
    state_dir: Path = Field(Path(".seed_state"), alias="SEED_STATE_DIR")
    entity_pause_seconds: float = Field(0.5, alias="SEED_ENTITY_PAUSE_SECONDS", ge=0)
    default_record_count: int = Field(10, alias="SEED_DEFAULT_RECORD_COUNT", ge=0)
    seed: int = Field(42, alias="SEED_RANDOM_SEED")
    suspend_validation_rules: bool = Field(True, alias="SEED_SUSPEND_VALIDATION_RULES")
    create_chunk_size: int = Field(200, alias="SEED_CREATE_CHUNK_SIZE", ge=1, le=200)
    picklist_cache_size: int = Field(50, alias="SEED_PICKLIST_CACHE_SIZE", ge=1)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def has_credentials(self) -> bool:
        return bool(self.sf_instance_url and self.sf_access_token)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
