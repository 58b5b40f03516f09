# This module is the `txn-monitor` command line entry point.
# `run` starts the long-lived scheduler that owns the in-memory watermarks until SIGINT/SIGTERM.
# `--once` triggers a single job through its Prefect flow for manual or tracked runs.

from __future__ import annotations

import argparse
import json
import logging
import signal
import threading
from datetime import tzinfo
from typing import Any

from txn_monitor.common.logging import configure_logging
from txn_monitor.jobs.monitor_config import MonitorConfig, load_monitor_config, resolve_timezone
from txn_monitor.jobs.monitor_jobs import (
    payment_log_monitor_flow,
    run_payment_log_monitor,
    run_scheduled_notification,
    run_transaction_monitor,
    scheduled_notification_flow,
    transaction_monitor_flow,
)
from txn_monitor.jobs.scheduler import DailyTrigger, IntervalTrigger, JobScheduler

LOGGER = logging.getLogger(__name__)

ONCE_CHOICES = ("transactions", "payment-log", "notification")


def _notification_job(time_label: str):
    def job(_stop_event: threading.Event) -> dict[str, Any]:
        return run_scheduled_notification(time_label)

    return job


def build_scheduler(config: MonitorConfig, *, tz: tzinfo) -> JobScheduler:
    scheduler = JobScheduler(max_workers=config.scheduler_max_workers)
    scheduler.add_job(
        "transaction-monitor",
        IntervalTrigger(config.transaction_interval_minutes),
        lambda stop_event: run_transaction_monitor(cancel_event=stop_event),
        run_immediately=True,
    )
    scheduler.add_job(
        "payment-log-monitor",
        IntervalTrigger(config.payment_log_interval_minutes),
        lambda stop_event: run_payment_log_monitor(cancel_event=stop_event),
        run_immediately=True,
    )
    if config.notifications_enabled:
        for slot in config.notification_slots:
            scheduler.add_job(
                f"notification-{slot.name}",
                DailyTrigger(times=(slot.at,), tz=tz),
                _notification_job(slot.label),
            )
    else:
        LOGGER.info("scheduled notifications disabled")
    return scheduler


def run_service(config: MonitorConfig) -> None:
    tz, fell_back = resolve_timezone(config.schedule_timezone)
    if fell_back:
        LOGGER.warning(
            "timezone not found name=%r; falling back to local timezone=%s", config.schedule_timezone, tz
        )
    scheduler = build_scheduler(config, tz=tz)

    def _request_stop(signum: int, _frame: Any) -> None:
        LOGGER.info("shutdown requested signal=%s", signal.Signals(signum).name)
        scheduler.stop_event.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    LOGGER.info("monitor service starting config=%s", json.dumps(config.to_dict(), sort_keys=True))
    try:
        scheduler.run_forever()
    finally:
        scheduler.shutdown(wait=True)
    LOGGER.info("monitor service stopped")


def run_once(job: str, *, time_label: str, lookback_minutes: int | None) -> dict[str, Any]:
    if job == "transactions":
        return transaction_monitor_flow(lookback_minutes=lookback_minutes)
    if job == "payment-log":
        return payment_log_monitor_flow(lookback_minutes=lookback_minutes)
    if job == "notification":
        return scheduled_notification_flow(time_label=time_label)
    raise ValueError(f"Unknown job: {job}")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Transaction delta monitor")
    parser.add_argument("command", nargs="?", default="run", choices=["run"], help="Start the scheduler service")
    parser.add_argument("--once", choices=ONCE_CHOICES, help="Run a single job through its Prefect flow and exit")
    parser.add_argument("--label", default="Manual", help="Time label for a one-off scheduled notification")
    parser.add_argument(
        "--lookback-minutes",
        type=int,
        default=None,
        help="For --once monitor runs: report rows from the last N minutes instead of only recording a baseline",
    )
    args = parser.parse_args(argv)
    if args.lookback_minutes is not None and args.lookback_minutes <= 0:
        parser.error("--lookback-minutes must be positive")
    return args


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    configure_logging()
    if args.once:
        result = run_once(args.once, time_label=args.label, lookback_minutes=args.lookback_minutes)
        print(json.dumps(result, indent=2, default=str))
        return
    run_service(load_monitor_config())


if __name__ == "__main__":
    main()
