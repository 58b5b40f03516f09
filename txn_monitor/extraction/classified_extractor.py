# This module extracts the processed / not-processed split for the payment log.
# It shares the time-window watermark lifecycle with the transaction extractor but runs a single classifying query.
# A row counts as processed when its correlation column holds a non-empty value.

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta

from sqlalchemy.engine import Row
from sqlalchemy.exc import SQLAlchemyError

from txn_monitor.common.db import ConfigurationMissingError, get_engine
from txn_monitor.extraction import query_builder
from txn_monitor.extraction.incremental_extractor import Clock, EngineFactory, close_quietly
from txn_monitor.extraction.source_registry import (
    DEFAULT_REGISTRY,
    PAYMENT_LOG_SOURCE,
    ClassifiedSourceDescriptor,
    RejectedIdentifierError,
    SourceRegistry,
)
from txn_monitor.extraction.summary import (
    ClassifiedSummary,
    GroupCount,
    empty_classified,
    order_by_count,
)
from txn_monitor.extraction.watermark_store import WatermarkStore

LOGGER = logging.getLogger(__name__)

GROUP_LABEL_SEPARATOR = " / "


def _classified_group(row: Row, group_count: int) -> tuple[bool, GroupCount]:
    mapping = row._mapping
    labels = tuple(str(mapping[f"group_{index}"]) for index in range(group_count))
    group = GroupCount(
        key=GROUP_LABEL_SEPARATOR.join(labels),
        count=int(mapping["row_count"]),
        labels=labels,
    )
    return int(mapping["is_processed"]) == 1, group


class ClassifiedExtractor:
    def __init__(
        self,
        *,
        source: ClassifiedSourceDescriptor = PAYMENT_LOG_SOURCE,
        engine_factory: EngineFactory = get_engine,
        registry: SourceRegistry = DEFAULT_REGISTRY,
        store: WatermarkStore | None = None,
        clock: Clock = datetime.now,
        schema: str | None = None,
    ) -> None:
        self.source = source
        self._engine_factory = engine_factory
        self._registry = registry
        self._store = store or WatermarkStore()
        self._clock = clock
        self._schema = schema

    def prime(self, lookback: timedelta) -> bool:
        """Start `lookback` before now instead of an empty baseline when no watermark exists yet."""

        since = self._clock() - lookback
        try:
            validated = self._registry.validate_classified(self.source, schema=self._schema)
        except RejectedIdentifierError as exc:
            LOGGER.error("cannot prime rejected source=%r reason=%s", self.source.name, exc)
            return False
        with self._store.hold(validated.table):
            if not self._store.current_window(validated.table, since).is_first_run:
                return False
            self._store.advance(validated.table, since)
        return True

    def extract(self, *, cancel_event: threading.Event | None = None) -> ClassifiedSummary:
        now = self._clock()
        if cancel_event is not None and cancel_event.is_set():
            LOGGER.warning("classified extraction cancelled source=%s", self.source.name)
            return empty_classified(now, status="cancelled")

        try:
            engine = self._engine_factory()
        except ConfigurationMissingError as exc:
            LOGGER.warning("classified extraction skipped reason=%s", exc)
            return empty_classified(now)

        try:
            validated = self._registry.validate_classified(self.source, schema=self._schema)
        except RejectedIdentifierError as exc:
            LOGGER.error("rejected source with unexpected identifiers source=%r reason=%s", self.source.name, exc)
            return ClassifiedSummary(from_time=now, to_time=now, status="rejected", error=str(exc))

        try:
            connection = engine.connect()
        except SQLAlchemyError as exc:
            LOGGER.error("monitored database unreachable source=%s error=%s", validated.table, exc)
            return ClassifiedSummary(from_time=now, to_time=now, status="failed", error=str(exc))

        key = validated.table
        group_count = len(self.source.group_columns)
        with self._store.hold(key):
            window = self._store.current_window(key, now)
            if window.is_first_run:
                close_quietly(connection)
                self._store.advance(key, window.to_ts)
                LOGGER.info("source baseline recorded source=%s to=%s", key, window.to_ts.isoformat())
                return ClassifiedSummary(from_time=window.from_ts, to_time=window.to_ts, status="first_run")

            try:
                query = query_builder.classified_count_by_time(connection.dialect, validated)
                rows = connection.execute(query, {"from_ts": window.from_ts, "to_ts": window.to_ts}).all()
                classified = [_classified_group(row, group_count) for row in rows]
            except SQLAlchemyError as exc:
                LOGGER.error("error querying source=%s error=%s", key, exc)
                return ClassifiedSummary(
                    from_time=window.from_ts, to_time=window.to_ts, status="failed", error=str(exc)
                )
            except Exception as exc:
                LOGGER.exception("unexpected data from source=%s", key)
                return ClassifiedSummary(
                    from_time=window.from_ts, to_time=window.to_ts, status="failed", error=str(exc)
                )
            finally:
                close_quietly(connection)

            self._store.advance(key, window.to_ts)

        summary = ClassifiedSummary(
            from_time=window.from_ts,
            to_time=window.to_ts,
            processed=order_by_count(group for is_processed, group in classified if is_processed),
            not_processed=order_by_count(group for is_processed, group in classified if not is_processed),
        )
        LOGGER.info(
            "classified extraction completed source=%s processed=%d not_processed=%d",
            key,
            summary.processed_count,
            summary.not_processed_count,
        )
        return summary
