"""
Catalog Configuration
Settings for the reference catalog replica, caches, remote clients and API.
"""

import json
from typing import List, Optional, Any
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator


class CatalogSettings(BaseSettings):
    """
    Reference catalog settings.

    Loaded from environment variables (or a .env file) using the aliases below.
    """

    # App info
    app_name: str = "Smetalab Reference Catalog"
    version: str = "0.1.0"
    description: str = "Local replica, caching and hybrid search for estimate catalogs"

    # Server settings
    host: str = Field(default="0.0.0.0", alias="API_HOST")
    port: int = Field(default=8000, alias="API_PORT")
    reload: bool = Field(default=False, alias="API_RELOAD")

    # CORS settings
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        alias="API_CORS_ORIGINS"
    )
    cors_allow_credentials: bool = True
    cors_allow_methods: List[str] = ["*"]
    cors_allow_headers: List[str] = ["*"]

    # Remote catalog API
    catalog_api_url: str = Field(default="http://localhost:3001/api", alias="CATALOG_API_URL")
    catalog_api_token: Optional[str] = Field(default=None, alias="CATALOG_API_TOKEN")
    materials_path: str = Field(default="/materials", alias="CATALOG_MATERIALS_PATH")
    works_path: str = Field(default="/works", alias="CATALOG_WORKS_PATH")
    semantic_search_path: str = Field(default="/search", alias="SEMANTIC_SEARCH_PATH")
    api_timeout_seconds: float = Field(default=30.0, alias="CATALOG_API_TIMEOUT")

    # Local replica
    replica_database_url: str = Field(
        default="sqlite:///data/catalog_replica.db",
        alias="REPLICA_DATABASE_URL"
    )
    sync_interval_hours: float = Field(default=24.0, alias="SYNC_INTERVAL_HOURS")
    sync_initial_delay_seconds: float = Field(default=1.0, alias="SYNC_INITIAL_DELAY")
    sync_max_records: int = Field(default=50000, alias="SYNC_MAX_RECORDS")
    sync_timeout_seconds: float = Field(default=120.0, alias="SYNC_TIMEOUT")
    sync_marker_key: str = "materials_last_sync"

    # Search
    search_page_size: int = Field(default=50, alias="SEARCH_PAGE_SIZE")
    search_debounce_ms: int = Field(default=400, alias="SEARCH_DEBOUNCE_MS")
    keyword_fallback_limit: int = Field(default=50, alias="KEYWORD_FALLBACK_LIMIT")
    semantic_search_enabled: bool = Field(default=True, alias="SEMANTIC_SEARCH_ENABLED")
    semantic_entity: str = Field(default="materials", alias="SEMANTIC_ENTITY")
    semantic_limit: int = Field(default=50, alias="SEMANTIC_LIMIT")
    semantic_threshold: float = Field(default=0.3, alias="SEMANTIC_THRESHOLD")
    semantic_timeout_seconds: float = Field(default=10.0, alias="SEMANTIC_TIMEOUT")

    # Works reference cache
    works_cache_ttl_ms: int = Field(default=10 * 60 * 1000, alias="WORKS_CACHE_TTL_MS")  # 10 min
    works_cache_key: str = Field(default="works-cache", alias="WORKS_CACHE_KEY")
    works_page_size: int = Field(default=20000, alias="WORKS_PAGE_SIZE")
    cache_persistence_enabled: bool = Field(default=False, alias="CACHE_PERSISTENCE_ENABLED")
    cache_persistence_max_bytes: Optional[int] = Field(default=5 * 1024 * 1024, alias="CACHE_PERSISTENCE_MAX_BYTES")

    # Redis settings (persistence backend)
    redis_enabled: bool = Field(default=False, alias="REDIS_ENABLED")
    redis_host: str = Field(default="localhost", alias="REDIS_HOST")
    redis_port: int = Field(default=6379, alias="REDIS_PORT")
    redis_db: int = Field(default=1, alias="REDIS_DB")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Any) -> List[str]:
        """Parse CORS origins from JSON string or list."""
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                # Fall back to comma-separated list
                return [origin.strip() for origin in v.split(",")]
        return v

    @property
    def sync_interval_ms(self) -> int:
        """Freshness window of the replica in milliseconds."""
        return int(self.sync_interval_hours * 3600 * 1000)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        env_prefix="",
        validate_default=True,
        populate_by_name=True
    )


# Global settings instance
_settings: Optional[CatalogSettings] = None


def get_settings() -> CatalogSettings:
    """Get global catalog settings (singleton)."""
    global _settings
    if _settings is None:
        _settings = CatalogSettings()
    return _settings


def reset_settings() -> None:
    """Reset settings (useful for testing)."""
    global _settings
    _settings = None
