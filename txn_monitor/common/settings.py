"""
Application settings loaded from environment variables.
Connection strings and the webhook address live here so extractors and delivery code never read the environment directly.
Optional values are blank-tolerant: an empty database URL or webhook URL means "not configured", not an error.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Final

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, ValidationError

REQUIRED_ENV_VARS: Final[tuple[str, ...]] = (
    "PROJECT_NAME",
    "ENV",
    "LOG_LEVEL",
)


class Settings(BaseModel):
    """Typed runtime configuration."""

    model_config = ConfigDict(extra="ignore")

    PROJECT_NAME: str
    ENV: str
    LOG_LEVEL: str
    MONITOR_DATABASE_URL: str = ""
    MONITOR_DB_SCHEMA: str = "dbo"
    TEAMS_WEBHOOK_URL: str = ""

    @property
    def database_configured(self) -> bool:
        return bool(self.MONITOR_DATABASE_URL.strip())

    @property
    def db_schema(self) -> str | None:
        schema = self.MONITOR_DB_SCHEMA.strip()
        return schema or None

    @property
    def webhook_url(self) -> str | None:
        url = self.TEAMS_WEBHOOK_URL.strip()
        return url or None


def load_settings(*, load_env: bool = True) -> Settings:
    """Load and validate environment settings from `.env` and process environment."""

    if load_env:
        load_dotenv()

    missing = [key for key in REQUIRED_ENV_VARS if not os.getenv(key)]
    if missing:
        missing_values = ", ".join(sorted(missing))
        raise RuntimeError(
            f"Missing required environment variables: {missing_values}. "
            "Populate these values in `.env` before starting the service."
        )

    try:
        return Settings.model_validate(dict(os.environ))
    except ValidationError as exc:
        raise RuntimeError(f"Invalid environment configuration: {exc}") from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached accessor for application settings."""

    return load_settings()
