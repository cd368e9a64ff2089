"""Application configuration via Pydantic BaseSettings."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    development = "development"
    staging = "staging"
    production = "production"
    test = "test"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database -- the single base connection string. Per-tenant handles are
    # derived from it by substituting the schema, never stored separately.
    DATABASE_URL: str = ""

    # Environment
    ENVIRONMENT: Environment = Environment.development

    # Logging
    LOG_LEVEL: str = "INFO"

    # Multi-tenant schema config
    SHARED_SCHEMA: str = "shared"
    TEMPLATE_SCHEMA: str = "coleapp_template"

    # Connection pools (per handle)
    CONTROL_PLANE_POOL_SIZE: int = 10
    TENANT_POOL_SIZE: int = 5
    TENANT_MAX_OVERFLOW: int = 5

    # Cross-schema operations
    CROSS_SCHEMA_CONCURRENCY: int = 4
    DEPROVISION_MAX_ATTEMPTS: int = 3

    # Redis (tenant resolution cache). Empty disables caching.
    REDIS_URL: str = ""
    TENANT_CACHE_TTL_SECONDS: int = 300

    # CORS
    CORS_ALLOWED_ORIGINS: str = "*"

    # Monitoring
    SENTRY_DSN: str = ""


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
