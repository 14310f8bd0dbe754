from __future__ import annotations

import logging
from datetime import UTC, datetime

from dbschema_sync.builder import build_database, filter_system_databases
from dbschema_sync.config import ConnectionConfig
from dbschema_sync.errors import ArgumentError
from dbschema_sync.executor import QueryExecutor, SQLAlchemyExecutor
from dbschema_sync.models import DatabaseSchemaMetadata, InstanceMetadata
from dbschema_sync.sources import SchemaSource, create_schema_source

logger = logging.getLogger(__name__)


class MetadataSyncer:
    """Produce metadata snapshots of one server and one of its databases.

    Each call re-queries the catalogs in full and returns a new immutable
    tree; any failure aborts the call and nothing partial is returned.
    """

    def __init__(self, config: ConnectionConfig, executor: QueryExecutor | None = None) -> None:
        self.config = config
        self._owns_executor = executor is None
        self.executor = executor or SQLAlchemyExecutor.connect(config)
        self.source: SchemaSource = create_schema_source(
            config.engine, self.executor, config.database
        )

    def __enter__(self) -> MetadataSyncer:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_executor and isinstance(self.executor, SQLAlchemyExecutor):
            self.executor.close()

    def sync_instance(self) -> InstanceMetadata:
        version = self.source.get_version()
        roles = self.source.load_instance_roles()
        databases = filter_system_databases(self.source.load_database(), self.source.profile)
        logger.info(
            "Synced %s instance %s: %d database(s), %d role(s)",
            self.config.engine,
            version.number,
            len(databases),
            len(roles),
        )
        return InstanceMetadata(
            version=version.number,
            instance_roles=roles,
            databases=databases,
            last_sync=datetime.now(UTC),
        )

    def sync_database(self) -> DatabaseSchemaMetadata:
        name = self.config.database
        database = next((db for db in self.source.load_database() if db.name == name), None)
        if database is None:
            raise ArgumentError(f"database {name!r} not found")

        logger.info("Syncing %s database '%s'", self.config.engine, name)
        with self.source.snapshot():
            schemas = self.source.load_schema()
            columns = self.source.load_column()
            indexes = self.source.load_index()
            foreign_keys = self.source.load_foreign_keys()
            listing = self.source.load_tables_and_views()
            routines = self.source.load_routines()
            extensions = self.source.load_extensions()

        result = build_database(
            database,
            schemas,
            listing,
            routines,
            columns,
            indexes,
            foreign_keys,
            extensions=extensions,
        )
        logger.info(
            "Synced database '%s': %d schema(s), %d table(s)",
            name,
            len(result.schemas),
            sum(len(s.tables) for s in result.schemas),
        )
        return result
