"""Fold ordered, one-row-per-part catalog results into composite entities.

Catalogs report an index as one row per key part and a foreign key as one
row per referencing column. Both folds below stream over rows that the
catalog query has already ordered by (table, name, position) and never
re-sort them. They do check that ordering: a group that shows up again
after it was completed, or a part position that goes backwards, raises
``UnrecognizedDataError`` instead of producing interleaved entities.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import NamedTuple

from dbschema_sync.errors import UnrecognizedDataError
from dbschema_sync.models import ForeignKeyMetadata, IndexMetadata

logger = logging.getLogger(__name__)


class TableKey(NamedTuple):
    schema: str
    table: str


@dataclass(frozen=True)
class IndexPartRow:
    table: TableKey
    index_name: str
    column_name: str | None = None
    expression: str | None = None
    key_length: int = -1
    index_type: str = ""
    unique: bool = False
    primary: bool = False
    visible: bool = True
    comment: str = ""
    definition: str = ""
    position: int | None = None


@dataclass(frozen=True)
class ForeignKeyColumnRow:
    table: TableKey
    constraint_name: str
    column_name: str
    referenced_table: str
    referenced_column: str
    referenced_schema: str = ""
    on_delete: str = ""
    on_update: str = ""
    match_type: str = ""
    position: int | None = None


def part_expression(column_name: str | None, expression: str | None) -> str:
    # A plain column reference wins over the (redundant) expression text.
    if column_name:
        return column_name
    if expression:
        return f"({expression})"
    return ""


@dataclass
class _IndexBuilder:
    first: IndexPartRow
    expressions: list[str] = field(default_factory=list)
    key_length: list[int] = field(default_factory=list)
    last_position: int | None = None

    def add(self, row: IndexPartRow) -> None:
        _check_position(self.last_position, row.position, "index", row.table, row.index_name)
        self.last_position = row.position
        self.expressions.append(part_expression(row.column_name, row.expression))
        self.key_length.append(row.key_length)

    def build(self) -> IndexMetadata:
        row = self.first
        return IndexMetadata(
            name=row.index_name,
            expressions=self.expressions,
            key_length=self.key_length,
            type=row.index_type,
            unique=row.unique,
            primary=row.primary,
            visible=row.visible,
            comment=row.comment,
            definition=row.definition,
        )


@dataclass
class _ForeignKeyBuilder:
    first: ForeignKeyColumnRow
    columns: list[str] = field(default_factory=list)
    referenced_columns: list[str] = field(default_factory=list)
    last_position: int | None = None

    def add(self, row: ForeignKeyColumnRow) -> None:
        _check_position(
            self.last_position, row.position, "foreign key", row.table, row.constraint_name
        )
        self.last_position = row.position
        self.columns.append(row.column_name)
        self.referenced_columns.append(row.referenced_column)

    def build(self) -> ForeignKeyMetadata:
        row = self.first
        return ForeignKeyMetadata(
            name=row.constraint_name,
            columns=self.columns,
            referenced_schema=row.referenced_schema,
            referenced_table=row.referenced_table,
            referenced_columns=self.referenced_columns,
            on_delete=row.on_delete,
            on_update=row.on_update,
            match_type=row.match_type,
        )


def _check_position(
    last: int | None, current: int | None, kind: str, table: TableKey, name: str
) -> None:
    if last is not None and current is not None and current <= last:
        raise UnrecognizedDataError(
            f"{kind} {name!r} on {_describe(table)} has part {current} after part {last}; "
            "catalog rows are not ordered by position"
        )


def _check_not_completed(
    completed: set[tuple[TableKey, str]], key: tuple[TableKey, str], kind: str
) -> None:
    if key in completed:
        raise UnrecognizedDataError(
            f"{kind} {key[1]!r} on {_describe(key[0])} appears in non-contiguous rows; "
            "catalog rows are not grouped by table and name"
        )


def _describe(table: TableKey) -> str:
    return f"{table.schema}.{table.table}" if table.schema else table.table


def group_index_rows(rows: Iterable[IndexPartRow]) -> dict[TableKey, list[IndexMetadata]]:
    """Group key-part rows into one IndexMetadata per (table, index), in arrival order."""
    result: dict[TableKey, list[IndexMetadata]] = {}
    completed: set[tuple[TableKey, str]] = set()
    current: _IndexBuilder | None = None
    current_key: tuple[TableKey, str] | None = None

    for row in rows:
        key = (row.table, row.index_name)
        if current is None or key != current_key:
            if current is not None and current_key is not None:
                result.setdefault(current_key[0], []).append(current.build())
                completed.add(current_key)
            _check_not_completed(completed, key, "index")
            current = _IndexBuilder(first=row)
            current_key = key
        current.add(row)

    if current is not None and current_key is not None:
        result.setdefault(current_key[0], []).append(current.build())

    logger.debug("Assembled indexes for %d table(s)", len(result))
    return result


def group_foreign_key_rows(
    rows: Iterable[ForeignKeyColumnRow],
) -> dict[TableKey, list[ForeignKeyMetadata]]:
    """Group per-column rows into one ForeignKeyMetadata per (table, constraint)."""
    result: dict[TableKey, list[ForeignKeyMetadata]] = {}
    completed: set[tuple[TableKey, str]] = set()
    current: _ForeignKeyBuilder | None = None
    current_key: tuple[TableKey, str] | None = None

    for row in rows:
        key = (row.table, row.constraint_name)
        if current is None or key != current_key:
            if current is not None and current_key is not None:
                result.setdefault(current_key[0], []).append(current.build())
                completed.add(current_key)
            _check_not_completed(completed, key, "foreign key")
            current = _ForeignKeyBuilder(first=row)
            current_key = key
        current.add(row)

    if current is not None and current_key is not None:
        result.setdefault(current_key[0], []).append(current.build())

    logger.debug("Assembled foreign keys for %d table(s)", len(result))
    return result
