from dbschema_sync.config import ConnectionConfig
from dbschema_sync.errors import ArgumentError, QueryError, SyncError, UnrecognizedDataError
from dbschema_sync.executor import QueryExecutor, SQLAlchemyExecutor
from dbschema_sync.models import (
    ColumnDefault,
    ColumnMetadata,
    DatabaseSchemaMetadata,
    DefaultKind,
    Engine,
    ExtensionMetadata,
    ExternalTableMetadata,
    ForeignKeyMetadata,
    FunctionMetadata,
    IdentityGeneration,
    IndexMetadata,
    InstanceMetadata,
    InstanceRoleMetadata,
    MaterializedViewMetadata,
    ProcedureMetadata,
    SchemaMetadata,
    TableMetadata,
    ViewMetadata,
)
from dbschema_sync.sync import MetadataSyncer
from dbschema_sync.version import ServerVersion, parse_version
from dbschema_sync.yaml_io import (
    database_from_json,
    database_from_yaml,
    database_to_json,
    database_to_yaml,
    instance_from_yaml,
    instance_to_yaml,
)

__all__ = [
    "ArgumentError",
    "ColumnDefault",
    "ColumnMetadata",
    "ConnectionConfig",
    "DatabaseSchemaMetadata",
    "DefaultKind",
    "Engine",
    "ExtensionMetadata",
    "ExternalTableMetadata",
    "ForeignKeyMetadata",
    "FunctionMetadata",
    "IdentityGeneration",
    "IndexMetadata",
    "InstanceMetadata",
    "InstanceRoleMetadata",
    "MaterializedViewMetadata",
    "MetadataSyncer",
    "ProcedureMetadata",
    "QueryError",
    "QueryExecutor",
    "SQLAlchemyExecutor",
    "SchemaMetadata",
    "ServerVersion",
    "SyncError",
    "TableMetadata",
    "UnrecognizedDataError",
    "ViewMetadata",
    "database_from_json",
    "database_from_yaml",
    "database_to_json",
    "database_to_yaml",
    "instance_from_yaml",
    "instance_to_yaml",
    "parse_version",
]
