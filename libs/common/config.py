"""Configuration management for the embedding service.

This module centralizes environment-driven configuration. It builds on
``pydantic_settings.BaseSettings`` so configuration can be provided via
environment variables, ``.env`` files, or defaults.

Highlights
- Strongly‑typed settings with sensible defaults
- One place to discover commonly used environment variables
- Short legacy aliases (``MODEL_ID``, ``PORT``, ``RANDOM_PORT``) are accepted
  next to the ``ML_*`` names

Usage
- Inject the config in your service entrypoint: ``config = EmbeddingConfig()``
"""

from typing import List, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from libs.common.logging import resolve_log_level


class BaseConfig(BaseSettings):
    """Base configuration shared by service entrypoints and tooling.

    Parameters are read from the process environment (case-insensitive
    field names). Defaults keep local development convenient while still
    being explicit.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    # Environment
    ml_env: str = Field(default="local")

    # Logging
    ml_log_level: str = Field(default="INFO")
    ml_log_format: str = Field(default="json")

    # Performance
    ml_gpu_preference: str = Field(default="auto")
    ml_max_batch_size: int = Field(default=32, ge=1)

    @field_validator("ml_log_level")
    @classmethod
    def _canonical_log_level(cls, value: str) -> str:
        return resolve_log_level(value)


class EmbeddingConfig(BaseConfig):
    """Configuration for the embedding service.

    Includes the model identity (fixed for the process lifetime), bind
    address and startup behaviour.
    """

    ml_embedding_model: str = Field(
        default="BAAI/bge-small-en-v1.5",
        validation_alias=AliasChoices("ml_embedding_model", "model_id"),
    )
    ml_embedding_device: Optional[str] = Field(default=None)
    ml_embedding_host: str = Field(default="0.0.0.0")
    ml_embedding_port: int = Field(
        default=4916,
        ge=0,
        le=65535,
        validation_alias=AliasChoices("ml_embedding_port", "port"),
    )
    ml_embedding_random_port: bool = Field(
        default=False,
        validation_alias=AliasChoices("ml_embedding_random_port", "random_port"),
    )
    ml_embedding_preload: bool = Field(default=False)
    ml_cors_origins: str = Field(default="*")

    def resolved_port(self) -> int:
        """Port to bind; ``0`` lets the OS pick a free one."""
        if self.ml_embedding_random_port or self.ml_embedding_port == 0:
            return 0
        return self.ml_embedding_port

    def cors_origin_list(self) -> List[str]:
        return [origin.strip() for origin in self.ml_cors_origins.split(",") if origin.strip()]
