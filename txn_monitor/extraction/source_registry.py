# This module holds the compiled-in allow-list of monitored tables and columns.
# Table and column names end up interpolated into SQL because identifiers cannot be bound as parameters.
# Every identifier is therefore checked here, and mapped to its canonical spelling, before any query text exists.
# The allow-sets are code, not configuration: nothing read from the environment can widen them.

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum


class RejectedIdentifierError(ValueError):
    """Raised when a table, column or schema name is not in the allow-list."""


class SourceKind(str, Enum):
    TIME_WINDOWED = "time_windowed"
    ID_WINDOWED = "id_windowed"


@dataclass(frozen=True)
class SourceDescriptor:
    """One monitored table. `name` is the table name and doubles as the watermark key."""

    name: str
    kind: SourceKind
    group_column: str | None
    date_column: str | None = None
    id_column: str | None = None

    def identifier_columns(self) -> tuple[str | None, ...]:
        if self.kind is SourceKind.TIME_WINDOWED:
            return (self.date_column, self.group_column)
        return (self.id_column, self.group_column)


@dataclass(frozen=True)
class ClassifiedSourceDescriptor:
    """A time-windowed table whose rows are split by whether a correlation value is present."""

    name: str
    date_column: str
    group_columns: tuple[str, ...]
    correlation_column: str


@dataclass(frozen=True)
class ValidatedSource:
    """Canonical identifiers that passed the allow-list; the only input the query builder accepts."""

    schema: str | None
    table: str
    columns: tuple[str, ...]


ALLOWED_TABLES: frozenset[str] = frozenset(
    {
        "TRX_Online_Card",
        "TRX_Online_Bank",
        "TRX_Online_Bank_PM",
        "TRX_Online_BHD",
        "TRX_Online_PayPal",
        "TRX_Online_PIX",
        "TRX_Online_Stripe",
        "TRX_Release_Now",
        "Payment_Log",
    }
)

ALLOWED_COLUMNS: frozenset[str] = frozenset(
    {
        "date_trx",
        "registration_date",
        "origin_bank",
        "origin_payment_country",
        "country",
        "id",
        "date",
        "payment_method",
        "country_id",
        "collection_id_real",
    }
)

ALLOWED_SCHEMAS: frozenset[str] = frozenset({"dbo"})


class SourceRegistry:
    """Case-insensitive allow-list lookup that returns canonical identifier spellings."""

    def __init__(
        self,
        *,
        tables: Iterable[str],
        columns: Iterable[str],
        schemas: Iterable[str] = (),
    ) -> None:
        self._tables = {name.lower(): name for name in tables}
        self._columns = {name.lower(): name for name in columns}
        self._schemas = {name.lower(): name for name in schemas}

    def validate(self, table: str, *columns: str | None, schema: str | None = None) -> ValidatedSource:
        canonical_table = self._lookup(self._tables, table, "table")
        canonical_columns = tuple(self._lookup(self._columns, column, "column") for column in columns)
        canonical_schema = None if schema is None else self._lookup(self._schemas, schema, "schema")
        return ValidatedSource(schema=canonical_schema, table=canonical_table, columns=canonical_columns)

    def validate_descriptor(self, descriptor: SourceDescriptor, *, schema: str | None = None) -> ValidatedSource:
        if not isinstance(descriptor.kind, SourceKind):
            raise RejectedIdentifierError(f"Unknown source kind for {descriptor.name!r}: {descriptor.kind!r}")
        return self.validate(descriptor.name, *descriptor.identifier_columns(), schema=schema)

    def validate_classified(
        self, descriptor: ClassifiedSourceDescriptor, *, schema: str | None = None
    ) -> ValidatedSource:
        if not descriptor.group_columns:
            raise RejectedIdentifierError(f"Classified source {descriptor.name!r} needs at least one group column")
        return self.validate(
            descriptor.name,
            descriptor.date_column,
            descriptor.correlation_column,
            *descriptor.group_columns,
            schema=schema,
        )

    @staticmethod
    def _lookup(allowed: dict[str, str], identifier: str | None, label: str) -> str:
        if not isinstance(identifier, str) or not identifier:
            raise RejectedIdentifierError(f"Missing {label} identifier")
        canonical = allowed.get(identifier.lower())
        if canonical is None:
            raise RejectedIdentifierError(f"Rejected unexpected {label} name: {identifier!r}")
        return canonical


DEFAULT_REGISTRY = SourceRegistry(tables=ALLOWED_TABLES, columns=ALLOWED_COLUMNS, schemas=ALLOWED_SCHEMAS)


def _time_source(name: str, group_column: str) -> SourceDescriptor:
    return SourceDescriptor(
        name=name,
        kind=SourceKind.TIME_WINDOWED,
        date_column="date_trx",
        group_column=group_column,
    )


TRANSACTION_SOURCES: tuple[SourceDescriptor, ...] = (
    _time_source("TRX_Online_Card", "origin_payment_country"),
    _time_source("TRX_Online_Bank", "origin_bank"),
    _time_source("TRX_Online_Bank_PM", "origin_bank"),
    _time_source("TRX_Online_BHD", "country"),
    _time_source("TRX_Online_PayPal", "origin_payment_country"),
    _time_source("TRX_Online_PIX", "country"),
    _time_source("TRX_Online_Stripe", "country"),
    SourceDescriptor(
        name="TRX_Release_Now",
        kind=SourceKind.ID_WINDOWED,
        id_column="id",
        group_column="country",
    ),
)

PAYMENT_LOG_SOURCE = ClassifiedSourceDescriptor(
    name="Payment_Log",
    date_column="date",
    group_columns=("payment_method", "country_id"),
    correlation_column="collection_id_real",
)
