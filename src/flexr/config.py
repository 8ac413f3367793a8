"""Configuration settings for FLEXR core services."""

from pathlib import Path
from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


# __file__ = src/flexr/config.py
# .parent.parent.parent = project root
PACKAGE_ROOT = Path(__file__).parent
PROJECT_ROOT = PACKAGE_ROOT.parent.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # API settings
    api_host: str = "0.0.0.0"
    api_port: int = 3000
    api_version: str = "v1"
    debug: bool = False

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]

    # Database
    database_backend: Literal["sqlite", "supabase"] = "sqlite"
    database_path: Optional[Path] = None
    supabase_url: str = ""
    supabase_service_key: str = ""

    # Analytics
    progress_default_days: int = 90

    # Device sync
    sync_queue_capacity: int = 100
    watch_app_version: str = "1.0"

    # Logging
    log_level: str = "INFO"

    def model_post_init(self, __context) -> None:
        """Set default database path after initialization."""
        if self.database_path is None:
            self.database_path = PROJECT_ROOT / "flexr.db"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
