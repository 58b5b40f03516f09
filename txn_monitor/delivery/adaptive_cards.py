# This module turns summary values into Teams adaptive-card payloads.
# Payloads are plain dictionaries with the camelCase keys the webhook expects, ready for `requests` JSON encoding.
# Layout stays minimal: a title, the covered window and one fact set per source.

from __future__ import annotations

from datetime import datetime
from typing import Any

from txn_monitor.extraction.summary import ClassifiedSummary, GroupCount, OverallSummary, TableSummary

CARD_CONTENT_TYPE = "application/vnd.microsoft.card.adaptive"
CARD_SCHEMA = "http://adaptivecards.io/schemas/adaptive-card.json"
CARD_VERSION = "1.4"

_STATUS_TEXT = {
    "first_run": "baseline recorded",
    "rejected": "source rejected",
    "failed": "query failed",
    "cancelled": "cancelled",
    "not_configured": "database not configured",
}


def wrap_card(body: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "type": "message",
        "attachments": [
            {
                "contentType": CARD_CONTENT_TYPE,
                "content": {
                    "type": "AdaptiveCard",
                    "version": CARD_VERSION,
                    "$schema": CARD_SCHEMA,
                    "body": body,
                },
            }
        ],
    }


def text_block(text: str, **options: Any) -> dict[str, Any]:
    return {"type": "TextBlock", "text": text, "wrap": True, **options}


def fact_set(facts: list[tuple[str, str]]) -> dict[str, Any]:
    return {"type": "FactSet", "facts": [{"title": title, "value": value} for title, value in facts]}


def _window_text(from_time: datetime, to_time: datetime) -> str:
    return f"{from_time:%Y-%m-%d %H:%M} to {to_time:%Y-%m-%d %H:%M}"


def _group_facts(groups: tuple[GroupCount, ...]) -> list[tuple[str, str]]:
    return [(group.key, str(group.count)) for group in groups]


def _table_section(table: TableSummary) -> list[dict[str, Any]]:
    heading = f"{table.source_name}: {table.total_count}"
    status_text = _STATUS_TEXT.get(table.status)
    if status_text:
        heading = f"{heading} ({status_text})"
    section = [text_block(heading, weight="Bolder", spacing="Medium")]
    if table.groups:
        section.append(fact_set(_group_facts(table.groups)))
    return section


def build_transaction_summary_card(summary: OverallSummary) -> dict[str, Any]:
    body = [
        text_block("New transactions", size="Large", weight="Bolder"),
        text_block(_window_text(summary.from_time, summary.to_time), spacing="Small"),
    ]
    if not summary.has_data:
        body.append(text_block("No new transactions in this window."))
    for table in summary.sources:
        body.extend(_table_section(table))
    return wrap_card(body)


def build_payment_log_card(summary: ClassifiedSummary) -> dict[str, Any]:
    body = [
        text_block("Payment log", size="Large", weight="Bolder"),
        text_block(_window_text(summary.from_time, summary.to_time), spacing="Small"),
    ]
    status_text = _STATUS_TEXT.get(summary.status)
    if status_text:
        body.append(text_block(f"Status: {status_text}"))
    body.append(text_block(f"Processed: {summary.processed_count}", weight="Bolder", spacing="Medium"))
    if summary.processed:
        body.append(fact_set(_group_facts(summary.processed)))
    body.append(text_block(f"Not processed: {summary.not_processed_count}", weight="Bolder", spacing="Medium"))
    if summary.not_processed:
        body.append(fact_set(_group_facts(summary.not_processed)))
    return wrap_card(body)


def build_scheduled_notification_card(*, time_label: str, now: datetime, environment: str) -> dict[str, Any]:
    sent_at = f"{now:%H:%M}"
    return wrap_card(
        [
            text_block(f"Scheduled notification - {time_label}", size="Large", weight="Bolder"),
            text_block(f"{now:%A, %B %d %Y}  |  {sent_at}", spacing="Small"),
            fact_set(
                [
                    ("Status", "Service running"),
                    ("Environment", environment),
                    ("Sent at", sent_at),
                ]
            ),
        ]
    )
