from __future__ import annotations

from dbschema_sync.dialect import get_profile
from dbschema_sync.executor import QueryExecutor
from dbschema_sync.models import Engine
from dbschema_sync.sources.base import RoutineListing, SchemaInfo, SchemaSource, TableListing
from dbschema_sync.sources.mysql import MySQLSchemaSource
from dbschema_sync.sources.postgres import PostgresSchemaSource

_SOURCES = {
    Engine.MYSQL: MySQLSchemaSource,
    Engine.TIDB: MySQLSchemaSource,
    Engine.POSTGRES: PostgresSchemaSource,
}


def create_schema_source(
    engine: Engine, executor: QueryExecutor, database_name: str
) -> SchemaSource:
    engine = Engine(engine)
    return _SOURCES[engine](executor, database_name, get_profile(engine))


__all__ = [
    "MySQLSchemaSource",
    "PostgresSchemaSource",
    "RoutineListing",
    "SchemaInfo",
    "SchemaSource",
    "TableListing",
    "create_schema_source",
]
