# This module defines the monitor jobs: extract a delta, render it as a card and post it to Teams.
# Extractors are process-lifetime singletons because their watermarks only live in memory.
# The plain `run_*` functions are what the in-process scheduler calls; the Prefect flows wrap them for tracked manual runs.
# Delivery failures propagate so the caller (scheduler or flow) records the run as failed.

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Any

from prefect import flow, get_run_logger

from txn_monitor.common.settings import get_settings
from txn_monitor.delivery.adaptive_cards import (
    build_payment_log_card,
    build_scheduled_notification_card,
    build_transaction_summary_card,
)
from txn_monitor.delivery.webhook_client import TeamsWebhookClient
from txn_monitor.extraction.classified_extractor import ClassifiedExtractor
from txn_monitor.extraction.incremental_extractor import IncrementalExtractor
from txn_monitor.extraction.summary import OverallSummary
from txn_monitor.jobs.monitor_config import MonitorConfig, load_monitor_config

LOGGER = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_transaction_extractor() -> IncrementalExtractor:
    return IncrementalExtractor(schema=get_settings().db_schema)


@lru_cache(maxsize=1)
def get_payment_log_extractor() -> ClassifiedExtractor:
    return ClassifiedExtractor(schema=get_settings().db_schema)


@lru_cache(maxsize=1)
def get_monitor_config() -> MonitorConfig:
    return load_monitor_config()


def build_webhook_client(*, timeout_seconds: int | None = None) -> TeamsWebhookClient:
    timeout = timeout_seconds if timeout_seconds is not None else get_monitor_config().webhook_timeout_seconds
    return TeamsWebhookClient(webhook_url=get_settings().webhook_url, timeout_seconds=timeout)


_UNREPORTED_STATUSES = frozenset({"first_run", "cancelled"})


def _unreported_status(summary: OverallSummary) -> str | None:
    """Return "cancelled" or "baseline" when no source in the pass produced anything worth posting."""

    if not summary.sources or any(table.status not in _UNREPORTED_STATUSES for table in summary.sources):
        return None
    if any(table.status == "cancelled" for table in summary.sources):
        return "cancelled"
    return "baseline"


def run_transaction_monitor(
    *,
    extractor: IncrementalExtractor | None = None,
    webhook: TeamsWebhookClient | None = None,
    cancel_event: threading.Event | None = None,
    lookback_minutes: int | None = None,
) -> dict[str, Any]:
    """Extract the transaction delta and post the summary card."""

    extractor = extractor or get_transaction_extractor()
    if lookback_minutes:
        extractor.prime(timedelta(minutes=lookback_minutes))

    summary = extractor.extract(cancel_event=cancel_event)
    result: dict[str, Any] = {
        "job": "transaction-monitor",
        "from_time": summary.from_time.isoformat(),
        "to_time": summary.to_time.isoformat(),
        "total_count": summary.total_count,
        "source_status": {table.source_name: table.status for table in summary.sources},
    }
    unreported = _unreported_status(summary)
    if unreported is not None:
        LOGGER.info("transaction monitor nothing to report status=%s sources=%d", unreported, len(summary.sources))
        return {**result, "status": unreported, "delivered": False}

    webhook = webhook or build_webhook_client()
    delivered = webhook.send_card(build_transaction_summary_card(summary))
    LOGGER.info(
        "transaction monitor finished total=%d has_data=%s delivered=%s",
        summary.total_count,
        summary.has_data,
        delivered,
    )
    return {**result, "status": "succeeded", "delivered": delivered}


def run_payment_log_monitor(
    *,
    extractor: ClassifiedExtractor | None = None,
    webhook: TeamsWebhookClient | None = None,
    cancel_event: threading.Event | None = None,
    lookback_minutes: int | None = None,
) -> dict[str, Any]:
    """Extract the processed / not-processed payment log split and post it."""

    extractor = extractor or get_payment_log_extractor()
    if lookback_minutes:
        extractor.prime(timedelta(minutes=lookback_minutes))

    summary = extractor.extract(cancel_event=cancel_event)
    result: dict[str, Any] = {
        "job": "payment-log-monitor",
        "from_time": summary.from_time.isoformat(),
        "to_time": summary.to_time.isoformat(),
        "source_status": summary.status,
        "processed_count": summary.processed_count,
        "not_processed_count": summary.not_processed_count,
    }
    if summary.status == "first_run":
        LOGGER.info("payment log monitor baseline recorded; nothing to report")
        return {**result, "status": "baseline", "delivered": False}
    if summary.status == "cancelled":
        return {**result, "status": "cancelled", "delivered": False}

    webhook = webhook or build_webhook_client()
    delivered = webhook.send_card(build_payment_log_card(summary))
    return {**result, "status": "succeeded", "delivered": delivered}


def run_scheduled_notification(
    time_label: str,
    *,
    webhook: TeamsWebhookClient | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    sent_at = now or datetime.now().astimezone()
    webhook = webhook or build_webhook_client()
    card = build_scheduled_notification_card(time_label=time_label, now=sent_at, environment=get_settings().ENV)
    delivered = webhook.send_card(card)
    LOGGER.info("scheduled notification finished label=%r delivered=%s", time_label, delivered)
    return {
        "job": "scheduled-notification",
        "status": "succeeded",
        "time_label": time_label,
        "sent_at": sent_at.isoformat(),
        "delivered": delivered,
    }


@flow(name="txn-monitor-transactions")
def transaction_monitor_flow(lookback_minutes: int | None = None) -> dict[str, Any]:
    logger = get_run_logger()
    result = run_transaction_monitor(lookback_minutes=lookback_minutes)
    logger.info("transaction monitor completed status=%s total=%s", result.get("status"), result.get("total_count"))
    return result


@flow(name="txn-monitor-payment-log")
def payment_log_monitor_flow(lookback_minutes: int | None = None) -> dict[str, Any]:
    logger = get_run_logger()
    result = run_payment_log_monitor(lookback_minutes=lookback_minutes)
    logger.info(
        "payment log monitor completed status=%s processed=%s not_processed=%s",
        result.get("status"),
        result.get("processed_count"),
        result.get("not_processed_count"),
    )
    return result


@flow(name="txn-monitor-scheduled-notification")
def scheduled_notification_flow(time_label: str) -> dict[str, Any]:
    logger = get_run_logger()
    result = run_scheduled_notification(time_label)
    logger.info("scheduled notification completed label=%r delivered=%s", time_label, result.get("delivered"))
    return result
