"""
Database connection utilities.
Engines are created lazily so that importing the package never opens a connection or requires a configured database.
A blank `MONITOR_DATABASE_URL` surfaces as `ConfigurationMissingError`, which the extractors turn into empty summaries.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from txn_monitor.common.settings import get_settings

LOGGER = logging.getLogger(__name__)


class ConfigurationMissingError(RuntimeError):
    """Raised when no monitored database has been configured."""


@lru_cache(maxsize=4)
def _engine_for_url(database_url: str) -> Engine:
    engine = create_engine(database_url, pool_pre_ping=True, future=True)
    LOGGER.info("monitor engine created dialect=%s", engine.dialect.name)
    return engine


def get_engine() -> Engine:
    """Return the shared engine for the monitored database."""

    settings = get_settings()
    if not settings.database_configured:
        raise ConfigurationMissingError(
            "MONITOR_DATABASE_URL is not configured; monitored sources cannot be queried."
        )
    return _engine_for_url(settings.MONITOR_DATABASE_URL.strip())


def test_connection() -> bool:
    """Return True if the monitored database can be reached and queried."""

    try:
        engine = get_engine()
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
