from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseModel):
    """Application-specific configuration values."""

    name: str = "SolrKit"
    env: str = "development"
    debug: bool = False
    port: int = 8000
    log_level: str = "INFO"
    # Transport settings for FastMCP: "stdio" (default), "http", or "sse"
    transport: Literal["stdio", "http", "sse"] = "stdio"
    host: str = "127.0.0.1"


class SolrConfig(BaseModel):
    """Solr server connection values."""

    server: Optional[str] = None  # e.g. http://localhost:8983/solr
    core: Optional[str] = None
    format: Literal["XML", "JSON"] = "XML"
    server_version: str = "4.0"
    autocommit: bool = True
    timeout: float = 30.0
    verify_ssl: bool = True
    username: Optional[str] = None
    token: Optional[str] = None  # password for basic auth
    unique_key: str = "id"


class Settings(BaseSettings):
    """Top-level settings loaded from environment variables and .env only."""

    model_config = SettingsConfigDict(
        env_prefix="SOLRKIT_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    app: AppConfig = AppConfig()
    solr: SolrConfig = SolrConfig()


def load_settings() -> Settings:
    """Load settings from environment variables and .env only."""
    return Settings()  # type: ignore[call-arg]
