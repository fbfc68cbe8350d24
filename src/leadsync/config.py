"""Application configuration via Pydantic BaseSettings."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from src.leadsync.sync.schemas import ConflictStrategy, SyncOptions


class Environment(str, Enum):
    development = "development"
    staging = "staging"
    production = "production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Environment
    ENVIRONMENT: Environment = Environment.development

    # Logging
    LOG_LEVEL: str = "INFO"

    # Remote CRM API
    API_BASE_URL: str = "http://localhost:5000"
    API_TOKEN: str = ""
    API_TIMEOUT: float = 30.0
    API_MAX_RETRIES: int = 3

    # Local key-value store
    REDIS_URL: str = "redis://localhost:6379/0"
    STORAGE_NAMESPACE: str = "crm"

    # Connectivity probe (empty = probe API_BASE_URL)
    CONNECTIVITY_PROBE_URL: str = ""

    # Sync engine
    SYNC_INTERVAL_MS: int = 60000
    SYNC_MAX_RETRIES: int = 5
    SYNC_ENTITY_TYPES: str = "leads,calls,notes"  # Comma separated
    SYNC_CONFLICT_RESOLUTION: ConflictStrategy = ConflictStrategy.SERVER_WINS
    SYNC_DEBUG: bool = False
    SYNC_AUTO_SYNC: bool = False
    SYNC_REQUEUE_FAILED: bool = False

    def get_entity_types(self) -> list[str]:
        """Split SYNC_ENTITY_TYPES into a clean list, preserving order."""
        return [t.strip() for t in self.SYNC_ENTITY_TYPES.split(",") if t.strip()]

    def get_probe_url(self) -> str:
        return self.CONNECTIVITY_PROBE_URL or self.API_BASE_URL

    def sync_options(self) -> SyncOptions:
        """Build the SyncEngine options object from settings."""
        return SyncOptions(
            sync_interval_ms=self.SYNC_INTERVAL_MS,
            max_retries=self.SYNC_MAX_RETRIES,
            entity_types=self.get_entity_types(),
            conflict_resolution=self.SYNC_CONFLICT_RESOLUTION,
            debug=self.SYNC_DEBUG,
            auto_sync=self.SYNC_AUTO_SYNC,
            requeue_failed=self.SYNC_REQUEUE_FAILED,
        )


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
