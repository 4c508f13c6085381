"""
Shared configuration management for the Entity Service.
"""

from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


MONGODB_SCHEMES = ("mongodb://", "mongodb+srv://")


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="ENTITIES_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Document store
    mongodb_uri: str = Field(
        validation_alias=AliasChoices("MONGODB_URI", "ENTITIES_MONGODB_URI", "mongodb_uri"),
    )
    database_name: str = Field(default="main")
    collection_name: str = Field(default="entity")
    store_timeout_seconds: float = Field(default=5.0, gt=0)
    connect_timeout_seconds: float = Field(default=10.0, gt=0)

    # Read cache
    revalidate_interval: float = Field(default=5.0, gt=0)

    @field_validator("mongodb_uri")
    @classmethod
    def _check_mongodb_uri(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith(MONGODB_SCHEMES):
            raise ValueError("mongodb_uri must start with mongodb:// or mongodb+srv://")
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        if value.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value}")
        return value.lower()


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int = 3000
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: Optional[int] = None, **kwargs):
        if port is not None:
            kwargs["port"] = port
        super().__init__(service_name=service_name, **kwargs)


def get_config(service_name: str, port: Optional[int] = None, **overrides) -> ServiceConfig:
    """Get configuration for a specific service.

    Environment variables and ``.env`` are read once here; a missing or invalid
    store URI raises ``pydantic.ValidationError``.
    """
    return ServiceConfig(service_name=service_name, port=port, **overrides)
