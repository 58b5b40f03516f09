# This test file covers the pure summary functions.
# Groups are ordered by count with ties kept in arrival order.
# Only a successful source with no rows gets the explicit zero marker.

from __future__ import annotations

from datetime import datetime

import pytest

from txn_monitor.extraction.summary import (
    GroupCount,
    SourceResult,
    aggregate_overall,
    build_table_summary,
    empty_classified,
    empty_overall,
    order_by_count,
)

NOW = datetime(2024, 5, 1, 9, 30, 0)


def test_order_by_count_is_descending_and_stable() -> None:
    groups = [GroupCount("VE", 2), GroupCount("CO", 5), GroupCount("PE", 2), GroupCount("AR", 1)]

    ordered = order_by_count(groups)

    assert [group.key for group in ordered] == ["CO", "VE", "PE", "AR"]


def test_empty_successful_source_gets_zero_marker() -> None:
    table = build_table_summary(SourceResult(source_name="TRX_Online_PIX", status="ok"))

    assert [(group.key, group.count) for group in table.groups] == [("TotalForTRX_Online_PIX", 0)]
    assert table.total_count == 0


@pytest.mark.parametrize("status", ["first_run", "failed", "rejected", "cancelled"])
def test_non_ok_sources_keep_empty_groups(status: str) -> None:
    table = build_table_summary(SourceResult(source_name="TRX_Online_PIX", status=status, error="boom"))

    assert table.groups == ()
    assert table.status == status


def test_aggregate_overall_keeps_source_order_and_totals() -> None:
    summary = aggregate_overall(
        NOW,
        NOW,
        [
            SourceResult("TRX_Online_Card", "ok", (GroupCount("VE", 1), GroupCount("CO", 4))),
            SourceResult("TRX_Online_Bank", "failed", error="timeout"),
            SourceResult("TRX_Online_PIX", "ok"),
        ],
    )

    assert [table.source_name for table in summary.sources] == ["TRX_Online_Card", "TRX_Online_Bank", "TRX_Online_PIX"]
    assert [group.key for group in summary.sources[0].groups] == ["CO", "VE"]
    assert summary.total_count == 5
    assert summary.has_data is True
    payload = summary.to_dict()
    assert payload["sources"][1] == {
        "source_name": "TRX_Online_Bank",
        "status": "failed",
        "total_count": 0,
        "groups": [],
        "error": "timeout",
    }


def test_empty_summaries_cover_a_zero_length_window() -> None:
    overall = empty_overall(NOW)
    classified = empty_classified(NOW)

    assert overall.from_time == overall.to_time == NOW
    assert overall.sources == ()
    assert overall.has_data is False
    assert classified.status == "not_configured"
    assert classified.processed_count == classified.not_processed_count == 0
