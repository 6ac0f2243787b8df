"""
Configuration Management.

Secrets come from config/.env (or the process environment); everything
else comes from config/settings/<section>.yaml, one file per AppConfig
section, each validated against its schema in config_schema.py.

Secrets:
    REDIS_PASSWORD, JWT_SECRET, RESEND_API_KEY

Usage:
    from storefront.backend.core.config import get_app_config, get_settings

    max_page_size = get_app_config().events.store.max_page_size
    secret = get_settings().jwt_secret
"""

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from storefront.backend.core.config_schema import (
    ApplicationSchema,
    ConcurrencySchema,
    EmailSchema,
    EventsSchema,
    FeaturesSchema,
    LoggingSchema,
    ObservabilitySchema,
    RedisSchema,
    SecuritySchema,
)

PROJECT_MARKER = ".project_root"


def find_project_root() -> Path:
    """Walk up from the working directory to the .project_root marker."""
    current = Path.cwd()
    while current != current.parent:
        if (current / PROJECT_MARKER).exists():
            return current
        current = current.parent
    raise RuntimeError("Project root not found. Ensure .project_root file exists.")


def load_yaml_config(filename: str) -> dict[str, Any]:
    """Load a YAML file from config/settings/. An empty file loads as {}."""
    config_path = find_project_root() / "config" / "settings" / filename
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path) as f:
        return yaml.safe_load(f) or {}


class Settings(BaseSettings):
    """Secrets only. JWT_SECRET is required; the others default to empty."""

    redis_password: str = ""
    jwt_secret: str
    resend_api_key: str = ""

    model_config = SettingsConfigDict(
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


class AppConfig(BaseModel):
    """
    Validated YAML settings.

    Field `x` is loaded from config/settings/x.yaml. Missing keys, wrong
    types or unknown keys fail at load with the offending file named.
    """

    application: ApplicationSchema
    redis: RedisSchema
    logging: LoggingSchema
    features: FeaturesSchema
    security: SecuritySchema
    observability: ObservabilitySchema
    concurrency: ConcurrencySchema
    events: EventsSchema
    email: EmailSchema

    model_config = ConfigDict(frozen=True)

    @classmethod
    def load(cls) -> "AppConfig":
        """
        Read and validate every section file.

        Raises:
            FileNotFoundError: A section file is missing
            ValueError: A section file does not match its schema
        """
        sections: dict[str, BaseModel] = {}
        for name, field in cls.model_fields.items():
            filename = f"{name}.yaml"
            try:
                sections[name] = field.annotation.model_validate(load_yaml_config(filename))
            except ValidationError as e:
                raise ValueError(f"Invalid configuration in {filename}:\n{e}") from e
        return cls(**sections)


@lru_cache
def get_settings() -> Settings:
    """Cached secrets; config/.env is resolved from the project root."""
    env_path = find_project_root() / "config" / ".env"
    return Settings(_env_file=str(env_path))


@lru_cache
def get_app_config() -> AppConfig:
    """Cached application configuration."""
    return AppConfig.load()


def get_redis_url() -> str:
    """Redis URL from redis.yaml plus the optional REDIS_PASSWORD secret."""
    redis = get_app_config().redis
    password = get_settings().redis_password
    auth = f":{password}@" if password else ""
    return f"redis://{auth}{redis.host}:{redis.port}/{redis.db}"
