# This module defines the summary values handed from the extractors to the delivery adapter.
# Extractors never build summaries from raw exceptions: each source yields a tagged `SourceResult`,
# and the pure functions below turn those results into ordered, fully populated report values.
# A successful source with no new rows still reports an explicit zero entry.

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

SourceStatus = Literal["ok", "first_run", "rejected", "failed", "cancelled", "not_configured"]

ZERO_MARKER_PREFIX = "TotalFor"


@dataclass(frozen=True)
class GroupCount:
    key: str
    count: int
    labels: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"key": self.key, "count": self.count}
        if self.labels:
            payload["labels"] = list(self.labels)
        return payload


@dataclass(frozen=True)
class SourceResult:
    source_name: str
    status: SourceStatus
    groups: tuple[GroupCount, ...] = ()
    error: str | None = None


@dataclass(frozen=True)
class TableSummary:
    source_name: str
    groups: tuple[GroupCount, ...]
    status: SourceStatus = "ok"
    error: str | None = None

    @property
    def total_count(self) -> int:
        return sum(group.count for group in self.groups)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_name": self.source_name,
            "status": self.status,
            "total_count": self.total_count,
            "groups": [group.to_dict() for group in self.groups],
            "error": self.error,
        }


@dataclass(frozen=True)
class OverallSummary:
    from_time: datetime
    to_time: datetime
    sources: tuple[TableSummary, ...] = field(default_factory=tuple)

    @property
    def has_data(self) -> bool:
        return any(source.total_count > 0 for source in self.sources)

    @property
    def total_count(self) -> int:
        return sum(source.total_count for source in self.sources)

    def to_dict(self) -> dict[str, Any]:
        return {
            "from_time": self.from_time.isoformat(),
            "to_time": self.to_time.isoformat(),
            "has_data": self.has_data,
            "total_count": self.total_count,
            "sources": [source.to_dict() for source in self.sources],
        }


@dataclass(frozen=True)
class ClassifiedSummary:
    from_time: datetime
    to_time: datetime
    processed: tuple[GroupCount, ...] = ()
    not_processed: tuple[GroupCount, ...] = ()
    status: SourceStatus = "ok"
    error: str | None = None

    @property
    def processed_count(self) -> int:
        return sum(group.count for group in self.processed)

    @property
    def not_processed_count(self) -> int:
        return sum(group.count for group in self.not_processed)

    @property
    def has_data(self) -> bool:
        return (self.processed_count + self.not_processed_count) > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "from_time": self.from_time.isoformat(),
            "to_time": self.to_time.isoformat(),
            "status": self.status,
            "processed_count": self.processed_count,
            "not_processed_count": self.not_processed_count,
            "processed": [group.to_dict() for group in self.processed],
            "not_processed": [group.to_dict() for group in self.not_processed],
            "error": self.error,
        }


def order_by_count(groups: Iterable[GroupCount]) -> tuple[GroupCount, ...]:
    """Descending by count; ties keep their arrival order."""

    return tuple(sorted(groups, key=lambda group: group.count, reverse=True))


def zero_marker(source_name: str) -> GroupCount:
    return GroupCount(key=f"{ZERO_MARKER_PREFIX}{source_name}", count=0)


def build_table_summary(result: SourceResult) -> TableSummary:
    groups = order_by_count(result.groups)
    if result.status == "ok" and not groups:
        groups = (zero_marker(result.source_name),)
    return TableSummary(
        source_name=result.source_name,
        groups=groups,
        status=result.status,
        error=result.error,
    )


def aggregate_overall(
    from_time: datetime,
    to_time: datetime,
    results: Iterable[SourceResult],
) -> OverallSummary:
    return OverallSummary(
        from_time=from_time,
        to_time=to_time,
        sources=tuple(build_table_summary(result) for result in results),
    )


def empty_overall(now: datetime) -> OverallSummary:
    return OverallSummary(from_time=now, to_time=now, sources=())


def empty_classified(now: datetime, *, status: SourceStatus = "not_configured") -> ClassifiedSummary:
    return ClassifiedSummary(from_time=now, to_time=now, status=status)
