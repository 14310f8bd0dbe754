from __future__ import annotations

import logging
from collections.abc import Iterable

from dbschema_sync.assembler import TableKey
from dbschema_sync.dialect import EngineProfile
from dbschema_sync.models import (
    ColumnMetadata,
    DatabaseSchemaMetadata,
    ExtensionMetadata,
    ForeignKeyMetadata,
    IndexMetadata,
    SchemaMetadata,
    TableMetadata,
)
from dbschema_sync.sources.base import RoutineListing, SchemaInfo, TableListing

logger = logging.getLogger(__name__)


def attach_table_children(
    schema_name: str,
    tables: Iterable[TableMetadata],
    columns: dict[TableKey, list[ColumnMetadata]],
    indexes: dict[TableKey, list[IndexMetadata]],
    foreign_keys: dict[TableKey, list[ForeignKeyMetadata]],
) -> list[TableMetadata]:
    """Move each table's columns, indexes and foreign keys out of the maps and onto the table.

    Entries are popped so whatever remains afterwards belongs to no base table.
    A table without entries keeps empty collections.
    """
    result = []
    for table in tables:
        key = TableKey(schema_name, table.name)
        result.append(
            table.model_copy(
                update={
                    "columns": columns.pop(key, []),
                    "indexes": indexes.pop(key, []),
                    "foreign_keys": foreign_keys.pop(key, []),
                }
            )
        )
    return result


def build_schema(
    info: SchemaInfo,
    listing: TableListing,
    routines: RoutineListing,
    columns: dict[TableKey, list[ColumnMetadata]],
    indexes: dict[TableKey, list[IndexMetadata]],
    foreign_keys: dict[TableKey, list[ForeignKeyMetadata]],
) -> SchemaMetadata:
    tables = attach_table_children(
        info.name, listing.tables.get(info.name, []), columns, indexes, foreign_keys
    )
    return SchemaMetadata(
        name=info.name,
        owner=info.owner,
        comment=info.comment,
        tables=tables,
        views=listing.views.get(info.name, []),
        materialized_views=listing.materialized_views.get(info.name, []),
        functions=routines.functions.get(info.name, []),
        procedures=routines.procedures.get(info.name, []),
    )


def build_database(
    database: DatabaseSchemaMetadata,
    schemas: Iterable[SchemaInfo],
    listing: TableListing,
    routines: RoutineListing,
    columns: dict[TableKey, list[ColumnMetadata]],
    indexes: dict[TableKey, list[IndexMetadata]],
    foreign_keys: dict[TableKey, list[ForeignKeyMetadata]],
    extensions: list[ExtensionMetadata] | None = None,
) -> DatabaseSchemaMetadata:
    schema_metadata = [
        build_schema(info, listing, routines, columns, indexes, foreign_keys) for info in schemas
    ]

    # View columns land here, as do objects created between two catalog queries.
    if columns or indexes or foreign_keys:
        logger.debug(
            "Discarding entries without a base table in %s: columns=%d indexes=%d foreign_keys=%d",
            database.name,
            len(columns),
            len(indexes),
            len(foreign_keys),
        )

    return database.model_copy(
        update={
            "schemas": [*database.schemas, *schema_metadata],
            "extensions": extensions if extensions is not None else database.extensions,
        }
    )


def filter_system_databases(
    databases: Iterable[DatabaseSchemaMetadata], profile: EngineProfile
) -> list[DatabaseSchemaMetadata]:
    return [db for db in databases if not profile.is_system_database(db.name)]
