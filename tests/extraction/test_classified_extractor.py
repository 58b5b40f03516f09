# This test file checks the processed / not-processed split of the payment log.
# Rows count as processed only when the correlation column holds a non-empty value.
# A failing query must leave the watermark where it was so the window is retried.

from __future__ import annotations

import threading
from datetime import timedelta
from typing import Any

import pytest
from sqlalchemy import MetaData, Table, create_engine
from sqlalchemy.engine import Engine

from tests.extraction.support import T0, StepClock, build_engine, insert_rows, payment_log_table
from txn_monitor.common.db import ConfigurationMissingError
from txn_monitor.extraction.classified_extractor import ClassifiedExtractor
from txn_monitor.extraction.source_registry import ClassifiedSourceDescriptor
from txn_monitor.extraction.watermark_store import WatermarkStore


@pytest.fixture()
def payment_log() -> tuple[Engine, Table]:
    engine = build_engine()
    metadata = MetaData()
    table = payment_log_table(metadata)
    metadata.create_all(engine)
    return engine, table


def _row(minutes: int, method: str | None, country: str | None, correlation: str | None) -> dict[str, Any]:
    return {
        "date": T0 + timedelta(minutes=minutes),
        "payment_method": method,
        "country_id": country,
        "collection_id_real": correlation,
    }


def test_split_into_processed_and_not_processed(payment_log: tuple[Engine, Table]) -> None:
    engine, table = payment_log
    clock = StepClock()
    extractor = ClassifiedExtractor(engine_factory=lambda: engine, clock=clock)

    baseline = extractor.extract()
    assert baseline.status == "first_run"

    insert_rows(
        engine,
        table,
        [
            _row(1, "card", "VE", "C-1"),
            _row(2, "card", "VE", "C-2"),
            _row(3, "card", "CO", None),
            _row(4, "pix", "BR", ""),
            _row(5, "pix", "BR", None),
            _row(6, None, "VE", "C-3"),
        ],
    )
    clock.advance(minutes=30)
    summary = extractor.extract()

    assert summary.status == "ok"
    assert [(group.key, group.count) for group in summary.processed] == [("card / VE", 2), ("N/A / VE", 1)]
    assert [(group.key, group.count) for group in summary.not_processed] == [("pix / BR", 2), ("card / CO", 1)]
    assert summary.processed[0].labels == ("card", "VE")
    assert summary.processed_count == 3
    assert summary.not_processed_count == 3
    assert summary.from_time == T0
    assert summary.to_time == T0 + timedelta(minutes=30)


def test_failed_query_keeps_watermark(payment_log: tuple[Engine, Table]) -> None:
    engine, table = payment_log
    clock = StepClock()
    store = WatermarkStore()
    extractor = ClassifiedExtractor(engine_factory=lambda: engine, clock=clock, store=store)
    extractor.extract()

    table.drop(engine)
    clock.advance(minutes=30)
    failed = extractor.extract()

    assert failed.status == "failed"
    assert failed.error
    assert failed.processed == failed.not_processed == ()
    assert store.snapshot()["Payment_Log"] == T0


def test_rejected_source_reports_error_without_querying() -> None:
    calls: list[str] = []

    def _factory() -> Engine:
        calls.append("engine")
        return build_engine()

    source = ClassifiedSourceDescriptor(
        name="Payment_Log",
        date_column="date",
        group_columns=("payment_method; DELETE FROM Payment_Log",),
        correlation_column="collection_id_real",
    )
    store = WatermarkStore()
    summary = ClassifiedExtractor(source=source, engine_factory=_factory, clock=StepClock(), store=store).extract()

    assert summary.status == "rejected"
    assert "Rejected unexpected column name" in (summary.error or "")
    assert store.snapshot() == {}


def test_unreachable_database_yields_empty_window_and_keeps_watermark(tmp_path: Any) -> None:
    missing = tmp_path / "no-such-dir" / "monitor.db"
    engine = create_engine(f"sqlite+pysqlite:///{missing}")
    store = WatermarkStore()
    extractor = ClassifiedExtractor(engine_factory=lambda: engine, clock=StepClock(), store=store)
    extractor.prime(timedelta(hours=1))

    summary = extractor.extract()

    assert summary.status == "failed"
    assert summary.error
    assert summary.from_time == summary.to_time == T0
    assert summary.processed == summary.not_processed == ()
    assert store.snapshot()["Payment_Log"] == T0 - timedelta(hours=1)


def test_missing_configuration_and_cancellation_return_empty_summaries() -> None:
    def _factory() -> Engine:
        raise ConfigurationMissingError("MONITOR_DATABASE_URL is not configured")

    not_configured = ClassifiedExtractor(engine_factory=_factory, clock=StepClock()).extract()
    assert not_configured.status == "not_configured"
    assert not_configured.from_time == not_configured.to_time == T0

    cancel = threading.Event()
    cancel.set()
    cancelled = ClassifiedExtractor(engine_factory=_factory, clock=StepClock()).extract(cancel_event=cancel)
    assert cancelled.status == "cancelled"


def test_prime_counts_rows_since_the_lookback_start(payment_log: tuple[Engine, Table]) -> None:
    engine, table = payment_log
    insert_rows(engine, table, [_row(-10, "card", "VE", None)])
    extractor = ClassifiedExtractor(engine_factory=lambda: engine, clock=StepClock())

    assert extractor.prime(timedelta(minutes=30)) is True
    assert extractor.prime(timedelta(minutes=60)) is False
    summary = extractor.extract()

    assert summary.status == "ok"
    assert [(group.key, group.count) for group in summary.not_processed] == [("card / VE", 1)]
