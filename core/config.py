"""Application configuration via Pydantic Settings v2.

Per-connection credentials live in the platform config models
(services/cms/*.py); this module only holds process-wide defaults.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


class Settings(BaseSettings):
    """Environment-driven defaults for the CMS adapter layer."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === HTTP client ===
    http_timeout: float = 30.0
    http_connect_timeout: float = 5.0
    http_max_connections: int = 20
    http_max_keepalive_connections: int = 10

    # === Publish service (caller-side retry / fan-out) ===
    publish_max_retries: int = 2
    publish_base_delay: float = 1.0
    publish_concurrency: int = 4

    # === Platform API versions ===
    ghost_api_version: str = "v5.0"
    notion_api_version: str = "2022-06-28"
    shopify_api_version: str = "2024-01"
    webflow_api_version: str = "v2"
    wordpress_api_version: str = "wp/v2"

    # === Optional credentials (env fallbacks) ===
    medium_access_token: SecretStr = SecretStr("")
    medium_publication_id: str = ""

    # === Logging ===
    log_level: str = "INFO"
    log_json: bool = True

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in _LOG_LEVELS:
            msg = f"LOG_LEVEL must be one of {sorted(_LOG_LEVELS)}"
            raise ValueError(msg)
        return level

    @field_validator("publish_max_retries", "publish_concurrency")
    @classmethod
    def _non_negative(cls, v: int) -> int:
        if v < 0:
            msg = "value must be >= 0"
            raise ValueError(msg)
        return v


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton Settings instance (cached after first call)."""
    return Settings()
