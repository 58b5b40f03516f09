"""
Unit tests for the identifier allow-list.
"""

from __future__ import annotations

import pytest

from txn_monitor.extraction.source_registry import (
    DEFAULT_REGISTRY,
    PAYMENT_LOG_SOURCE,
    TRANSACTION_SOURCES,
    RejectedIdentifierError,
    SourceDescriptor,
    SourceKind,
    SourceRegistry,
)


def test_every_compiled_in_source_passes_validation() -> None:
    for descriptor in TRANSACTION_SOURCES:
        validated = DEFAULT_REGISTRY.validate_descriptor(descriptor, schema="dbo")
        assert validated.table == descriptor.name
        assert validated.schema == "dbo"

    payment_log = DEFAULT_REGISTRY.validate_classified(PAYMENT_LOG_SOURCE)
    assert payment_log.columns == ("date", "collection_id_real", "payment_method", "country_id")


def test_lookup_is_case_insensitive_and_returns_canonical_names() -> None:
    validated = DEFAULT_REGISTRY.validate("trx_online_card", "DATE_TRX", "Origin_Payment_Country", schema="DBO")

    assert validated.table == "TRX_Online_Card"
    assert validated.columns == ("date_trx", "origin_payment_country")
    assert validated.schema == "dbo"


@pytest.mark.parametrize(
    ("table", "columns", "schema"),
    [
        ("TRX_Online_Card; DROP TABLE Users", ("date_trx",), None),
        ("Users", ("date_trx",), None),
        ("TRX_Online_Card", ("date_trx", "country OR 1=1"), None),
        ("TRX_Online_Card", ("date_trx",), "sys"),
        ("TRX_Online_Card", ("",), None),
    ],
)
def test_unexpected_identifiers_are_rejected(table: str, columns: tuple[str, ...], schema: str | None) -> None:
    with pytest.raises(RejectedIdentifierError):
        DEFAULT_REGISTRY.validate(table, *columns, schema=schema)


def test_descriptor_without_group_column_is_rejected() -> None:
    descriptor = SourceDescriptor(
        name="TRX_Online_Card",
        kind=SourceKind.TIME_WINDOWED,
        date_column="date_trx",
        group_column=None,
    )

    with pytest.raises(RejectedIdentifierError, match="Missing column"):
        DEFAULT_REGISTRY.validate_descriptor(descriptor)


def test_id_windowed_descriptor_validates_id_and_group_columns() -> None:
    release = next(item for item in TRANSACTION_SOURCES if item.kind is SourceKind.ID_WINDOWED)

    validated = DEFAULT_REGISTRY.validate_descriptor(release)

    assert validated.table == "TRX_Release_Now"
    assert validated.columns == ("id", "country")


def test_registry_without_schemas_rejects_any_schema() -> None:
    registry = SourceRegistry(tables={"Alpha"}, columns={"created_at"})

    assert registry.validate("alpha", "created_at").schema is None
    with pytest.raises(RejectedIdentifierError, match="schema"):
        registry.validate("Alpha", "created_at", schema="dbo")
