# This file provides shared helpers for extraction tests.
# It builds an in-memory SQLite database that stays alive across connections via StaticPool.
# Tables use DateTime columns so stored values compare the same way the bound window parameters do.
# The step clock only moves when a test advances it, so every pass sees a known `now`.

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import Column, DateTime, Integer, MetaData, String, Table, create_engine, insert
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from txn_monitor.extraction.source_registry import SourceRegistry

T0 = datetime(2024, 5, 1, 9, 0, 0)


def build_engine() -> Engine:
    return create_engine(
        "sqlite+pysqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        future=True,
    )


def time_table(metadata: MetaData, name: str, *, date_column: str = "date_trx", group_column: str = "country") -> Table:
    return Table(
        name,
        metadata,
        Column("row_id", Integer, primary_key=True, autoincrement=True),
        Column(date_column, DateTime, nullable=False),
        Column(group_column, String(64), nullable=True),
    )


def id_table(metadata: MetaData, name: str, *, group_column: str = "country") -> Table:
    return Table(
        name,
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=False),
        Column(group_column, String(64), nullable=True),
    )


def payment_log_table(metadata: MetaData) -> Table:
    return Table(
        "Payment_Log",
        metadata,
        Column("row_id", Integer, primary_key=True, autoincrement=True),
        Column("date", DateTime, nullable=False),
        Column("payment_method", String(32), nullable=True),
        Column("country_id", String(8), nullable=True),
        Column("collection_id_real", String(64), nullable=True),
    )


def insert_rows(engine: Engine, table: Table, rows: Iterable[dict[str, Any]]) -> None:
    values = list(rows)
    if not values:
        return
    with engine.begin() as connection:
        connection.execute(insert(table), values)


def registry_for(tables: Iterable[str], columns: Iterable[str]) -> SourceRegistry:
    return SourceRegistry(tables=tables, columns=columns)


class StepClock:
    """Returns the same instant until the test moves it forward."""

    def __init__(self, start: datetime = T0) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **delta: float) -> datetime:
        self.current = self.current + timedelta(**delta)
        return self.current
