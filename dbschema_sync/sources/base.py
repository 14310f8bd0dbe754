from __future__ import annotations

from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import Protocol

from dbschema_sync.assembler import TableKey
from dbschema_sync.dialect import EngineProfile
from dbschema_sync.models import (
    ColumnMetadata,
    DatabaseSchemaMetadata,
    ExtensionMetadata,
    ForeignKeyMetadata,
    FunctionMetadata,
    IndexMetadata,
    InstanceRoleMetadata,
    MaterializedViewMetadata,
    ProcedureMetadata,
    TableMetadata,
    ViewMetadata,
)
from dbschema_sync.version import ServerVersion


@dataclass(frozen=True)
class SchemaInfo:
    name: str
    owner: str = ""
    comment: str = ""


@dataclass
class TableListing:
    """Tables and views collected for one database, keyed by schema name."""

    tables: dict[str, list[TableMetadata]] = field(default_factory=dict)
    views: dict[str, list[ViewMetadata]] = field(default_factory=dict)
    materialized_views: dict[str, list[MaterializedViewMetadata]] = field(default_factory=dict)


@dataclass
class RoutineListing:
    functions: dict[str, list[FunctionMetadata]] = field(default_factory=dict)
    procedures: dict[str, list[ProcedureMetadata]] = field(default_factory=dict)


class SchemaSource(Protocol):
    """The catalog queries one engine family answers.

    Every ``load_*`` call re-queries the catalog; nothing is cached between calls.
    """

    profile: EngineProfile
    database_name: str

    def snapshot(self) -> AbstractContextManager[None]: ...

    def get_version(self) -> ServerVersion: ...

    def load_database(self) -> list[DatabaseSchemaMetadata]: ...

    def load_schema(self) -> list[SchemaInfo]: ...

    def load_column(self) -> dict[TableKey, list[ColumnMetadata]]: ...

    def load_index(self) -> dict[TableKey, list[IndexMetadata]]: ...

    def load_foreign_keys(self) -> dict[TableKey, list[ForeignKeyMetadata]]: ...

    def load_tables_and_views(self) -> TableListing: ...

    def load_routines(self) -> RoutineListing: ...

    def load_extensions(self) -> list[ExtensionMetadata]: ...

    def load_instance_roles(self) -> list[InstanceRoleMetadata]: ...
