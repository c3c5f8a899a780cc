"""Configuration helpers for scraping and sync orchestration."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env(name: str, default: str) -> str:
    return os.getenv(name, default)


@dataclass
class Settings:
    """Container for environment-driven settings."""

    environment: str = field(default_factory=lambda: _env("ENVIRONMENT", "development"))
    celery_broker_url: str = field(default_factory=lambda: _env("CELERY_BROKER_URL", "redis://localhost:6379/0"))
    celery_result_backend: str = field(
        default_factory=lambda: _env("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")
    )
    database_url: str | None = field(default_factory=lambda: os.getenv("DATABASE_URL"))
    sqlite_path: str = field(default_factory=lambda: _env("SQLITE_PATH", "./data/couponmia.db"))
    playwright_browser: str = field(default_factory=lambda: _env("PLAYWRIGHT_BROWSER", "chromium"))
    playwright_headless: bool = field(default_factory=lambda: _env_flag("PLAYWRIGHT_HEADLESS", default=True))
    scrape_wait_timeout_ms: int = field(default_factory=lambda: int(_env("SCRAPE_WAIT_TIMEOUT_MS", "10000")))
    scrape_settle_ms: int = field(default_factory=lambda: int(_env("SCRAPE_SETTLE_MS", "2000")))
    viglink_api_key: str = field(default_factory=lambda: _env("VIGLINK_API_KEY", ""))

    # Affiliate network (BrandReward) API
    affiliate_api_url: str = field(default_factory=lambda: _env("AFFILIATE_API_URL", "http://api.brandreward.com"))
    api_user: str = field(default_factory=lambda: _env("API_USER", ""))
    api_key: str = field(default_factory=lambda: _env("API_KEY", ""))
    affiliate_page_size: int = field(default_factory=lambda: int(_env("AFFILIATE_PAGE_SIZE", "1000")))
    affiliate_request_timeout: float = field(
        default_factory=lambda: float(_env("AFFILIATE_REQUEST_TIMEOUT", "30"))
    )
    sync_page_delay: float = field(default_factory=lambda: float(_env("SYNC_PAGE_DELAY", "10")))
    sync_test_mode: bool = field(
        default_factory=lambda: _env_flag("SYNC_TEST_MODE", default=_env_flag("TEST_MODE", default=False))
    )
    sync_store_delay: float = field(default_factory=lambda: float(_env("SYNC_STORE_DELAY", "0.1")))
    sync_schedule_hour: int = field(default_factory=lambda: int(_env("SYNC_SCHEDULE_HOUR", "3")))

    # API server configuration
    api_server_host: str = field(default_factory=lambda: _env("API_SERVER_HOST", "0.0.0.0"))
    api_server_port: int = field(default_factory=lambda: int(_env("API_SERVER_PORT", "8000")))

    def resolved_database_url(self) -> str:
        """Return a SQLAlchemy-compatible database URL."""

        if self.database_url:
            return self.database_url

        sqlite_file = Path(self.sqlite_path)
        if not sqlite_file.is_absolute():
            sqlite_file = Path.cwd() / sqlite_file
        sqlite_file.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{sqlite_file.as_posix()}"

    @property
    def affiliate_enabled(self) -> bool:
        return bool(self.api_user and self.api_key)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()
