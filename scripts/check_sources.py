#!/usr/bin/env python3
"""
Check every compiled-in monitor source against the identifier allow-list.
When a database is configured it also checks that each table answers a trivial bounded query.
Run it before deploying a new source list, and expect JSON output and a non-zero exit on failure.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from txn_monitor.common.db import get_engine
from txn_monitor.common.logging import configure_logging
from txn_monitor.common.settings import get_settings
from txn_monitor.extraction.query_builder import qualified_table
from txn_monitor.extraction.source_registry import (
    DEFAULT_REGISTRY,
    PAYMENT_LOG_SOURCE,
    TRANSACTION_SOURCES,
    RejectedIdentifierError,
    ValidatedSource,
)


def validate_sources(schema: str | None) -> tuple[list[dict[str, Any]], list[ValidatedSource]]:
    report: list[dict[str, Any]] = []
    validated: list[ValidatedSource] = []
    for descriptor in TRANSACTION_SOURCES:
        try:
            source = DEFAULT_REGISTRY.validate_descriptor(descriptor, schema=schema)
        except RejectedIdentifierError as exc:
            report.append({"source": descriptor.name, "kind": descriptor.kind.value, "valid": False, "error": str(exc)})
            continue
        validated.append(source)
        report.append({"source": source.table, "kind": descriptor.kind.value, "valid": True, "columns": list(source.columns)})

    try:
        source = DEFAULT_REGISTRY.validate_classified(PAYMENT_LOG_SOURCE, schema=schema)
    except RejectedIdentifierError as exc:
        report.append({"source": PAYMENT_LOG_SOURCE.name, "kind": "classified", "valid": False, "error": str(exc)})
    else:
        validated.append(source)
        report.append({"source": source.table, "kind": "classified", "valid": True, "columns": list(source.columns)})
    return report, validated


def check_reachability(sources: list[ValidatedSource]) -> dict[str, str]:
    engine = get_engine()
    results: dict[str, str] = {}
    with engine.connect() as connection:
        for source in sources:
            query = text(f"SELECT COUNT(*) FROM {qualified_table(connection.dialect, source)} WHERE 1 = 0")
            try:
                connection.execute(query).scalar_one()
                results[source.table] = "reachable"
            except SQLAlchemyError as exc:
                connection.rollback()
                results[source.table] = f"error: {exc.__class__.__name__}"
    return results


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Validate monitored sources and optionally check database reachability")
    parser.add_argument("--skip-reachability", action="store_true", help="Only run allow-list validation")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    configure_logging()
    settings = get_settings()

    report, validated = validate_sources(settings.db_schema)
    payload: dict[str, Any] = {"sources": report}
    passed = all(entry["valid"] for entry in report)

    if args.skip_reachability or not settings.database_configured:
        payload["reachability"] = "skipped"
    else:
        try:
            reachability = check_reachability(validated)
        except SQLAlchemyError as exc:
            reachability = {"connection": f"error: {exc}"}
        payload["reachability"] = reachability
        passed = passed and all(value == "reachable" for value in reachability.values())

    print(json.dumps({"passed": passed, **payload}, indent=2))
    if not passed:
        print("Source check failed. Fix the source list or database access before starting the monitor.", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
