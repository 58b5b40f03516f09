# This file defines runtime configuration for the scheduled monitor jobs.
# The loader merges YAML defaults from configs/monitor.yaml with environment overrides.
# Schedule cadence and notification slots live here; connection details stay in common.settings.

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, time, tzinfo
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "configs" / "monitor.yaml"
DEFAULT_TIMEZONE = "America/Caracas"


def _load_yaml(path: str | Path) -> dict[str, Any]:
    if not Path(path).exists():
        LOGGER.warning("monitor config not found path=%s; using built-in defaults", path)
        return {}
    with open(path, encoding="utf-8") as handle:
        loaded = yaml.safe_load(handle) or {}
    if not isinstance(loaded, dict):
        raise ValueError(f"Config at {path} must be a mapping, got: {type(loaded).__name__}")
    return dict(loaded)


def _env_str(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value


def _env_int(name: str, default: int | None = None) -> int | None:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return int(value)


def _env_bool(name: str, default: bool | None = None) -> bool | None:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    raise ValueError(f"{name} must be a boolean value (true/false), got: {value!r}")


def _parse_clock_time(value: Any, field_name: str) -> time:
    try:
        return datetime.strptime(str(value).strip(), "%H:%M").time()
    except ValueError as exc:
        raise ValueError(f"{field_name} must use HH:MM format, got: {value!r}") from exc


@dataclass(frozen=True)
class NotificationSlot:
    name: str
    at: time
    label: str


@dataclass(frozen=True)
class MonitorConfig:
    schedule_timezone: str
    transaction_interval_minutes: int
    payment_log_interval_minutes: int
    notifications_enabled: bool
    notification_slots: tuple[NotificationSlot, ...]
    webhook_timeout_seconds: int
    scheduler_max_workers: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "schedule_timezone": self.schedule_timezone,
            "transaction_interval_minutes": self.transaction_interval_minutes,
            "payment_log_interval_minutes": self.payment_log_interval_minutes,
            "notifications_enabled": self.notifications_enabled,
            "notification_slots": [
                {"name": slot.name, "at": slot.at.strftime("%H:%M"), "label": slot.label}
                for slot in self.notification_slots
            ],
            "webhook_timeout_seconds": self.webhook_timeout_seconds,
            "scheduler_max_workers": self.scheduler_max_workers,
        }


def _parse_slots(raw_slots: Any) -> tuple[NotificationSlot, ...]:
    if raw_slots is None:
        return ()
    if not isinstance(raw_slots, list):
        raise ValueError("schedule.notifications must be a list of {name, time, label} mappings")
    slots: list[NotificationSlot] = []
    for index, raw in enumerate(raw_slots):
        if not isinstance(raw, dict):
            raise ValueError(f"schedule.notifications[{index}] must be a mapping")
        name = str(raw.get("name") or f"slot-{index}")
        slots.append(
            NotificationSlot(
                name=name,
                at=_parse_clock_time(raw.get("time"), f"schedule.notifications[{index}].time"),
                label=str(raw.get("label") or name),
            )
        )
    return tuple(slots)


def load_monitor_config(*, config_path: str | Path = DEFAULT_CONFIG_PATH) -> MonitorConfig:
    loaded = _load_yaml(config_path)
    schedule_cfg = dict(loaded.get("schedule", {}) or {})
    webhook_cfg = dict(loaded.get("webhook", {}) or {})

    schedule_timezone = str(
        _env_str("MONITOR_SCHEDULE_TIMEZONE", str(schedule_cfg.get("timezone", DEFAULT_TIMEZONE)))
    )
    transaction_interval = int(
        _env_int("TRANSACTION_MONITOR_INTERVAL_MINUTES", int(schedule_cfg.get("transaction_monitor_minutes", 30)))
        or 30
    )
    payment_log_interval = int(
        _env_int("PAYMENT_LOG_MONITOR_INTERVAL_MINUTES", int(schedule_cfg.get("payment_log_monitor_minutes", 30)))
        or 30
    )
    notifications_enabled = bool(
        _env_bool("SCHEDULED_NOTIFICATIONS_ENABLED", bool(schedule_cfg.get("notifications_enabled", True)))
    )
    webhook_timeout = int(
        _env_int("TEAMS_WEBHOOK_TIMEOUT_SECONDS", int(webhook_cfg.get("timeout_seconds", 30))) or 30
    )
    max_workers = int(_env_int("SCHEDULER_MAX_WORKERS", int(schedule_cfg.get("scheduler_max_workers", 4))) or 4)

    if transaction_interval <= 0 or payment_log_interval <= 0:
        raise ValueError("Monitor intervals must be positive minute counts")
    if max_workers <= 0:
        raise ValueError("SCHEDULER_MAX_WORKERS must be positive")

    return MonitorConfig(
        schedule_timezone=schedule_timezone,
        transaction_interval_minutes=transaction_interval,
        payment_log_interval_minutes=payment_log_interval,
        notifications_enabled=notifications_enabled,
        notification_slots=_parse_slots(schedule_cfg.get("notifications")),
        webhook_timeout_seconds=webhook_timeout,
        scheduler_max_workers=max_workers,
    )


def resolve_timezone(name: str) -> tuple[tzinfo, bool]:
    """Return the configured zone, or the local zone and True when the name is unknown."""

    try:
        return ZoneInfo(name), False
    except (ZoneInfoNotFoundError, ValueError):
        local_zone = datetime.now().astimezone().tzinfo
        assert local_zone is not None
        return local_zone, True
