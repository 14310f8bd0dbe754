from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Fields that change between two syncs of an unchanged database.
VOLATILE_FIELDS = frozenset({"row_count", "data_size", "index_size", "data_free", "last_sync"})


class Engine(StrEnum):
    MYSQL = "MYSQL"
    TIDB = "TIDB"
    POSTGRES = "POSTGRES"


class IdentityGeneration(StrEnum):
    UNSPECIFIED = "UNSPECIFIED"
    ALWAYS = "ALWAYS"
    BY_DEFAULT = "BY_DEFAULT"


class DefaultKind(StrEnum):
    EXPRESSION = "EXPRESSION"
    LITERAL = "LITERAL"
    NULL = "NULL"
    AUTO_INCREMENT = "AUTO_INCREMENT"


class _Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True)


class ColumnDefault(_Snapshot):
    kind: DefaultKind
    value: str | None = None


class ColumnMetadata(_Snapshot):
    name: str
    position: int
    type: str
    default: ColumnDefault | None = None
    on_update: str | None = None
    nullable: bool = True
    character_set: str = ""
    collation: str = ""
    comment: str = ""
    identity_generation: IdentityGeneration = IdentityGeneration.UNSPECIFIED


class IndexMetadata(_Snapshot):
    name: str
    expressions: list[str] = Field(default_factory=list)
    key_length: list[int] = Field(default_factory=list)
    type: str = ""
    unique: bool = False
    primary: bool = False
    visible: bool = True
    comment: str = ""
    definition: str = ""

    @model_validator(mode="after")
    def _check_key_parts(self) -> IndexMetadata:
        if len(self.expressions) != len(self.key_length):
            raise ValueError(
                f"index {self.name!r} has {len(self.expressions)} expressions "
                f"but {len(self.key_length)} key lengths"
            )
        return self


class ForeignKeyMetadata(_Snapshot):
    name: str
    columns: list[str]
    referenced_schema: str = ""
    referenced_table: str
    referenced_columns: list[str]
    on_delete: str = ""
    on_update: str = ""
    match_type: str = ""

    @model_validator(mode="after")
    def _check_column_pairs(self) -> ForeignKeyMetadata:
        if not self.columns or len(self.columns) != len(self.referenced_columns):
            raise ValueError(
                f"foreign key {self.name!r} must pair each column with a referenced column, "
                f"got {self.columns} -> {self.referenced_columns}"
            )
        return self


class TableMetadata(_Snapshot):
    name: str
    columns: list[ColumnMetadata] = Field(default_factory=list)
    indexes: list[IndexMetadata] = Field(default_factory=list)
    foreign_keys: list[ForeignKeyMetadata] = Field(default_factory=list)
    engine: str = ""
    collation: str | None = None
    row_count: int = 0
    data_size: int = 0
    index_size: int = 0
    data_free: int = 0
    create_options: str = ""
    comment: str = ""
    owner: str = ""


class ExternalTableMetadata(_Snapshot):
    name: str
    columns: list[ColumnMetadata] = Field(default_factory=list)


class ViewMetadata(_Snapshot):
    name: str
    definition: str = ""
    comment: str = ""
    dependent_columns: list[str] = Field(default_factory=list)


class MaterializedViewMetadata(_Snapshot):
    name: str
    definition: str = ""
    comment: str = ""
    dependent_columns: list[str] = Field(default_factory=list)


class FunctionMetadata(_Snapshot):
    name: str
    definition: str = ""


class ProcedureMetadata(_Snapshot):
    name: str
    definition: str = ""


class SchemaMetadata(_Snapshot):
    name: str
    owner: str = ""
    comment: str = ""
    tables: list[TableMetadata] = Field(default_factory=list)
    views: list[ViewMetadata] = Field(default_factory=list)
    materialized_views: list[MaterializedViewMetadata] = Field(default_factory=list)
    functions: list[FunctionMetadata] = Field(default_factory=list)
    procedures: list[ProcedureMetadata] = Field(default_factory=list)
    external_tables: list[ExternalTableMetadata] = Field(default_factory=list)


class ExtensionMetadata(_Snapshot):
    name: str
    schema_name: str = ""
    version: str = ""
    description: str = ""


class DatabaseSchemaMetadata(_Snapshot):
    name: str
    character_set: str = ""
    collation: str = ""
    owner: str = ""
    datashare: bool = False
    service_name: str = ""
    extensions: list[ExtensionMetadata] = Field(default_factory=list)
    schemas: list[SchemaMetadata] = Field(default_factory=list)


class InstanceRoleMetadata(_Snapshot):
    name: str
    attributes: list[str] = Field(default_factory=list)


class InstanceMetadata(_Snapshot):
    version: str
    instance_roles: list[InstanceRoleMetadata] = Field(default_factory=list)
    databases: list[DatabaseSchemaMetadata] = Field(default_factory=list)
    last_sync: datetime | None = None
