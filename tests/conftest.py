"""
Shared test configuration.
Every test runs with the required settings present, no monitored database and no webhook,
so nothing reaches the network unless a test injects its own engine or session.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from txn_monitor.common import settings as settings_module


@pytest.fixture(autouse=True)
def base_test_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Ensure required environment variables are present during tests."""

    defaults = {
        "PROJECT_NAME": "test-project",
        "ENV": "test",
        "LOG_LEVEL": "INFO",
    }
    for key, value in defaults.items():
        if os.getenv(key) is None:
            monkeypatch.setenv(key, value)

    if os.getenv("RUN_DB_INTEGRATION") != "1":
        monkeypatch.setenv("MONITOR_DATABASE_URL", "")
    monkeypatch.setenv("TEAMS_WEBHOOK_URL", "")

    settings_module.get_settings.cache_clear()
    yield
    settings_module.get_settings.cache_clear()
