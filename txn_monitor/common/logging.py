"""
Logging configuration helpers.
The service, the Prefect flows and the operator scripts all call `configure_logging()` once at startup.
"""

from __future__ import annotations

import logging

from txn_monitor.common.settings import get_settings

_LOGGING_CONFIGURED = False


def configure_logging() -> None:
    """Configure process-wide logging from environment settings."""

    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    settings = get_settings()
    level_name = settings.LOG_LEVEL.upper()
    level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    # urllib3 connection chatter stays at INFO or above.
    logging.getLogger("urllib3").setLevel(max(level, logging.INFO))
    _LOGGING_CONFIGURED = True
