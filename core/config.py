"""Application configuration with environment-specific profiles.

Supports dev, test, staging, and production environments via APP_ENV.
All values can be overridden by environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Settings:
    """Immutable application settings resolved from environment."""

    database_url: str
    app_env: str = "dev"
    log_level: str = "INFO"

    # Session generation
    default_timezone: str = "UTC"

    # HTTP surface
    request_id_header_name: str = "X-Request-ID"
    cors_origins: list[str] = field(default_factory=list)

    # Pagination
    generated_sessions_page_size: int = 20
    generated_sessions_max_page_size: int = 100

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"


# -- Environment profiles --

_ENV_PROFILES: dict[str, dict] = {
    "dev": {
        "log_level": "DEBUG",
    },
    "test": {
        "log_level": "INFO",
    },
    "staging": {
        "log_level": "INFO",
    },
    "production": {
        "log_level": "WARNING",
    },
}


def get_database_url() -> str:
    """Resolve database URL from env var or local default."""
    env_url = os.getenv("DATABASE_URL")
    if env_url:
        return env_url
    return "postgresql+psycopg2://localhost:5432/liftplan"


def _split_csv(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


def get_settings() -> Settings:
    """Build Settings by merging environment profile with env-var overrides."""
    app_env = os.getenv("APP_ENV", "dev")
    profile = _ENV_PROFILES.get(app_env, _ENV_PROFILES["dev"])

    return Settings(
        database_url=get_database_url(),
        app_env=app_env,
        log_level=os.getenv("LOG_LEVEL", profile.get("log_level", "INFO")),
        default_timezone=os.getenv("DEFAULT_TIMEZONE", "UTC"),
        request_id_header_name=os.getenv("REQUEST_ID_HEADER", "X-Request-ID"),
        cors_origins=_split_csv(os.getenv("CORS_ORIGINS", "")),
        generated_sessions_page_size=int(os.getenv("GENERATED_SESSIONS_PAGE_SIZE", "20")),
        generated_sessions_max_page_size=int(os.getenv("GENERATED_SESSIONS_MAX_PAGE_SIZE", "100")),
    )
