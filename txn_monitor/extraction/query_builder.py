# This module renders the bounded aggregation queries run by the extractors.
# It only accepts `ValidatedSource` values, so identifiers reaching the SQL text have already passed the allow-list.
# Identifiers are quoted with the target dialect's preparer; window bounds are always bound parameters.

from __future__ import annotations

from sqlalchemy import BigInteger, DateTime, bindparam, text
from sqlalchemy.engine import Dialect
from sqlalchemy.sql.elements import TextClause

from txn_monitor.extraction.source_registry import ValidatedSource

NULL_GROUP_KEY = "N/A"


def _quote(dialect: Dialect, identifier: str) -> str:
    return dialect.identifier_preparer.quote_identifier(identifier)


def qualified_table(dialect: Dialect, source: ValidatedSource) -> str:
    table = _quote(dialect, source.table)
    if source.schema is None:
        return table
    return f"{_quote(dialect, source.schema)}.{table}"


def _time_bounds(clause: TextClause) -> TextClause:
    return clause.bindparams(
        bindparam("from_ts", type_=DateTime()),
        bindparam("to_ts", type_=DateTime()),
    )


def grouped_count_by_time(dialect: Dialect, source: ValidatedSource) -> TextClause:
    """Group rows with `from_ts <= date < to_ts`; expects columns (date, group)."""

    date_column, group_column = (_quote(dialect, column) for column in source.columns)
    table = qualified_table(dialect, source)
    return _time_bounds(
        text(
            f"""
            SELECT COALESCE({group_column}, '{NULL_GROUP_KEY}') AS group_key, COUNT(*) AS row_count
            FROM {table}
            WHERE {date_column} >= :from_ts AND {date_column} < :to_ts
            GROUP BY {group_column}
            ORDER BY row_count DESC
            """
        )
    )


def max_identifier(dialect: Dialect, source: ValidatedSource) -> TextClause:
    """Current maximum identifier of the table, 0 when empty; expects columns (id, group)."""

    id_column = _quote(dialect, source.columns[0])
    table = qualified_table(dialect, source)
    return text(f"SELECT COALESCE(MAX({id_column}), 0) AS max_id FROM {table}")


def max_identifier_after(dialect: Dialect, source: ValidatedSource) -> TextClause:
    """Highest identifier strictly above `last_id`, NULL when nothing is new."""

    id_column = _quote(dialect, source.columns[0])
    table = qualified_table(dialect, source)
    return text(
        f"SELECT MAX({id_column}) AS max_id FROM {table} WHERE {id_column} > :last_id"
    ).bindparams(bindparam("last_id", type_=BigInteger()))


def grouped_count_by_id(dialect: Dialect, source: ValidatedSource) -> TextClause:
    """Group rows with `last_id < id <= max_id`; expects columns (id, group)."""

    id_column, group_column = (_quote(dialect, column) for column in source.columns)
    table = qualified_table(dialect, source)
    return text(
        f"""
        SELECT COALESCE({group_column}, '{NULL_GROUP_KEY}') AS group_key, COUNT(*) AS row_count
        FROM {table}
        WHERE {id_column} > :last_id AND {id_column} <= :max_id
        GROUP BY {group_column}
        ORDER BY row_count DESC
        """
    ).bindparams(
        bindparam("last_id", type_=BigInteger()),
        bindparam("max_id", type_=BigInteger()),
    )


def classified_count_by_time(dialect: Dialect, source: ValidatedSource) -> TextClause:
    """Group by the business columns plus a processed flag; expects columns (date, correlation, *groups)."""

    date_column, correlation_column, *group_columns = (_quote(dialect, column) for column in source.columns)
    table = qualified_table(dialect, source)
    processed_flag = (
        f"CASE WHEN {correlation_column} IS NOT NULL AND {correlation_column} <> '' THEN 1 ELSE 0 END"
    )
    group_keys = ",\n                ".join(
        f"COALESCE({column}, '{NULL_GROUP_KEY}') AS group_{index}" for index, column in enumerate(group_columns)
    )
    group_by = ", ".join(group_columns)
    return _time_bounds(
        text(
            f"""
            SELECT
                {group_keys},
                {processed_flag} AS is_processed,
                COUNT(*) AS row_count
            FROM {table}
            WHERE {date_column} >= :from_ts AND {date_column} < :to_ts
            GROUP BY {group_by}, {processed_flag}
            ORDER BY is_processed DESC, row_count DESC
            """
        )
    )
