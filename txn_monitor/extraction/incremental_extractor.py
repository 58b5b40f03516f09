# This module runs one incremental extraction pass over the monitored transaction tables.
# Each source is validated, bounded by its own watermark, queried and only then advanced (commit-after-read).
# A failing or rejected source is isolated: it contributes an empty, tagged entry and the pass moves on.
# No exception leaves `extract()`; an unconfigured or unreachable database yields an empty `[now, now)` summary.

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime, timedelta

from sqlalchemy.engine import Connection, Engine, Row
from sqlalchemy.exc import SQLAlchemyError

from txn_monitor.common.db import ConfigurationMissingError, get_engine
from txn_monitor.extraction import query_builder
from txn_monitor.extraction.source_registry import (
    DEFAULT_REGISTRY,
    TRANSACTION_SOURCES,
    RejectedIdentifierError,
    SourceDescriptor,
    SourceKind,
    SourceRegistry,
    ValidatedSource,
)
from txn_monitor.extraction.summary import (
    GroupCount,
    OverallSummary,
    SourceResult,
    aggregate_overall,
    empty_overall,
)
from txn_monitor.extraction.watermark_store import WatermarkStore

LOGGER = logging.getLogger(__name__)

EngineFactory = Callable[[], Engine]
Clock = Callable[[], datetime]


def group_from_row(row: Row) -> GroupCount:
    return GroupCount(key=str(row.group_key), count=int(row.row_count))


def rollback_quietly(connection: Connection) -> None:
    """Reset the shared connection after a failed statement so later sources can still run."""

    try:
        connection.rollback()
    except SQLAlchemyError as exc:
        LOGGER.warning("connection rollback failed error=%s", exc)


def close_quietly(connection: Connection) -> None:
    try:
        connection.close()
    except SQLAlchemyError as exc:
        LOGGER.warning("connection close failed error=%s", exc)


class IncrementalExtractor:
    """Owns the watermarks for one group of sources and extracts their deltas on each call."""

    def __init__(
        self,
        *,
        sources: Sequence[SourceDescriptor] = TRANSACTION_SOURCES,
        engine_factory: EngineFactory = get_engine,
        registry: SourceRegistry = DEFAULT_REGISTRY,
        store: WatermarkStore | None = None,
        clock: Clock = datetime.now,
        schema: str | None = None,
    ) -> None:
        self.sources = tuple(sources)
        self._engine_factory = engine_factory
        self._registry = registry
        self._store = store or WatermarkStore()
        self._clock = clock
        self._schema = schema

    def prime(self, lookback: timedelta) -> list[str]:
        """Start time-windowed sources without a watermark `lookback` before now instead of an empty baseline.

        Id-windowed sources cannot be rewound by time and keep the regular first-run seeding.
        Returns the names of the sources that were primed.
        """

        since = self._clock() - lookback
        primed: list[str] = []
        for descriptor in self.sources:
            if descriptor.kind is not SourceKind.TIME_WINDOWED:
                continue
            try:
                validated = self._registry.validate_descriptor(descriptor, schema=self._schema)
            except RejectedIdentifierError as exc:
                LOGGER.error("cannot prime rejected source=%r reason=%s", descriptor.name, exc)
                continue
            with self._store.hold(validated.table):
                if self._store.current_window(validated.table, since).is_first_run:
                    self._store.advance(validated.table, since)
                    primed.append(validated.table)
        LOGGER.info("sources primed count=%d since=%s", len(primed), since.isoformat())
        return primed

    def extract(
        self,
        sources: Iterable[SourceDescriptor] | None = None,
        *,
        cancel_event: threading.Event | None = None,
    ) -> OverallSummary:
        descriptors = tuple(sources) if sources is not None else self.sources
        now = self._clock()

        try:
            engine = self._engine_factory()
        except ConfigurationMissingError as exc:
            LOGGER.warning("transaction extraction skipped reason=%s", exc)
            return empty_overall(now)

        try:
            connection = engine.connect()
        except SQLAlchemyError as exc:
            LOGGER.error("monitored database unreachable error=%s", exc)
            return empty_overall(now)

        results: list[SourceResult] = []
        window_starts: list[datetime] = [now]
        try:
            for index, descriptor in enumerate(descriptors):
                if cancel_event is not None and cancel_event.is_set():
                    remaining = descriptors[index:]
                    LOGGER.warning("transaction extraction cancelled remaining_sources=%d", len(remaining))
                    results.extend(SourceResult(source_name=item.name, status="cancelled") for item in remaining)
                    break
                result, window_start = self._extract_source(connection, descriptor, now)
                results.append(result)
                window_starts.append(window_start)
        finally:
            close_quietly(connection)

        summary = aggregate_overall(min(window_starts), now, results)
        LOGGER.info(
            "transaction extraction completed sources=%d failed=%d rejected=%d total=%d from=%s to=%s",
            len(summary.sources),
            sum(1 for result in results if result.status == "failed"),
            sum(1 for result in results if result.status == "rejected"),
            summary.total_count,
            summary.from_time.isoformat(),
            summary.to_time.isoformat(),
        )
        return summary

    def _extract_source(
        self,
        connection: Connection,
        descriptor: SourceDescriptor,
        now: datetime,
    ) -> tuple[SourceResult, datetime]:
        try:
            validated = self._registry.validate_descriptor(descriptor, schema=self._schema)
        except RejectedIdentifierError as exc:
            LOGGER.error("rejected source with unexpected identifiers source=%r reason=%s", descriptor.name, exc)
            return SourceResult(source_name=descriptor.name, status="rejected", error=str(exc)), now

        with self._store.hold(validated.table):
            if descriptor.kind is SourceKind.TIME_WINDOWED:
                return self._extract_time_windowed(connection, validated, now)
            return self._extract_id_windowed(connection, validated), now

    def _extract_time_windowed(
        self,
        connection: Connection,
        source: ValidatedSource,
        now: datetime,
    ) -> tuple[SourceResult, datetime]:
        key = source.table
        window = self._store.current_window(key, now)
        if window.is_first_run:
            self._store.advance(key, window.to_ts)
            LOGGER.info("source baseline recorded source=%s to=%s", key, window.to_ts.isoformat())
            return SourceResult(source_name=key, status="first_run"), window.from_ts

        query = query_builder.grouped_count_by_time(connection.dialect, source)
        try:
            rows = connection.execute(query, {"from_ts": window.from_ts, "to_ts": window.to_ts}).all()
            groups = tuple(group_from_row(row) for row in rows)
        except Exception as exc:
            LOGGER.exception("error querying source=%s from=%s", key, window.from_ts.isoformat())
            rollback_quietly(connection)
            return SourceResult(source_name=key, status="failed", error=str(exc)), window.from_ts

        self._store.advance(key, window.to_ts)
        return SourceResult(source_name=key, status="ok", groups=groups), window.from_ts

    def _extract_id_windowed(self, connection: Connection, source: ValidatedSource) -> SourceResult:
        key = source.table
        bound = self._store.current_id_bound(key)
        dialect = connection.dialect
        try:
            if bound.is_first_run:
                seed = int(connection.execute(query_builder.max_identifier(dialect, source)).scalar_one())
                self._store.advance_id(key, seed)
                LOGGER.info("source baseline recorded source=%s last_id=%d", key, seed)
                return SourceResult(source_name=key, status="first_run")

            max_id = connection.execute(
                query_builder.max_identifier_after(dialect, source),
                {"last_id": bound.last_id},
            ).scalar()
            if max_id is None:
                return SourceResult(source_name=key, status="ok")

            max_id = int(max_id)
            rows = connection.execute(
                query_builder.grouped_count_by_id(dialect, source),
                {"last_id": bound.last_id, "max_id": max_id},
            ).all()
            groups = tuple(group_from_row(row) for row in rows)
        except Exception as exc:
            LOGGER.exception("error querying source=%s last_id=%d", key, bound.last_id)
            rollback_quietly(connection)
            return SourceResult(source_name=key, status="failed", error=str(exc))

        self._store.advance_id(key, max_id)
        return SourceResult(source_name=key, status="ok", groups=groups)
