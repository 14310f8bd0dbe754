from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from dbschema_sync.assembler import (
    ForeignKeyColumnRow,
    IndexPartRow,
    TableKey,
    group_foreign_key_rows,
    group_index_rows,
)
from dbschema_sync.defaults import (
    convert_yes_no,
    normalize_postgres_default,
    parse_identity_generation,
)
from dbschema_sync.dialect import EngineProfile
from dbschema_sync.errors import UnrecognizedDataError
from dbschema_sync.executor import QueryExecutor
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
from dbschema_sync.sources.base import RoutineListing, SchemaInfo, TableListing
from dbschema_sync.version import ServerVersion, parse_server_version_num

logger = logging.getLogger(__name__)

# pg_constraint.confupdtype / confdeltype
FOREIGN_KEY_ACTIONS = {
    "a": "NO ACTION",
    "r": "RESTRICT",
    "c": "CASCADE",
    "n": "SET NULL",
    "d": "SET DEFAULT",
}
# pg_constraint.confmatchtype
FOREIGN_KEY_MATCH_TYPES = {"f": "FULL", "p": "PARTIAL", "s": "SIMPLE"}

# pg_index.indnkeyatts and INCLUDE columns arrived in PostgreSQL 11.
INCLUDE_COLUMNS_RELEASE = (11, 0, 0)

ROLE_ATTRIBUTES = (
    ("rolsuper", "Superuser"),
    ("rolcreaterole", "Create role"),
    ("rolcreatedb", "Create DB"),
    ("rolcanlogin", "Login"),
    ("rolreplication", "Replication"),
    ("rolbypassrls", "Bypass RLS"),
)

_DATABASES_SQL = """
SELECT datname,
    pg_encoding_to_char(encoding) AS character_set,
    datcollate,
    pg_catalog.pg_get_userbyid(datdba) AS db_owner
FROM pg_database
ORDER BY datname
"""

_ROLES_SQL = """
SELECT rolname, rolsuper, rolcreaterole, rolcreatedb, rolcanlogin, rolreplication, rolbypassrls
FROM pg_catalog.pg_roles
WHERE rolname NOT LIKE 'pg\\_%'
ORDER BY rolname
"""

_SCHEMAS_SQL = """
SELECT nspname,
    pg_catalog.pg_get_userbyid(nspowner) AS schema_owner,
    obj_description(oid, 'pg_namespace') AS schema_comment
FROM pg_catalog.pg_namespace
WHERE {schema_filter}
ORDER BY nspname
"""

_COLUMNS_SQL = """
SELECT
    cols.table_schema,
    cols.table_name,
    cols.column_name,
    cols.data_type,
    cols.character_maximum_length,
    cols.ordinal_position,
    cols.column_default,
    cols.is_nullable,
    cols.collation_name,
    cols.udt_schema,
    cols.udt_name,
    cols.identity_generation,
    pg_catalog.col_description(
        format('%s.%s', quote_ident(cols.table_schema), quote_ident(cols.table_name))::regclass,
        cols.ordinal_position::int
    ) AS column_comment
FROM information_schema.columns AS cols
WHERE {schema_filter}
ORDER BY cols.table_schema, cols.table_name, cols.ordinal_position
"""

# One row per key part. {key_count} is indnkeyatts (excludes INCLUDE columns) on 11+
# and indnatts before INCLUDE existed. Plain column parts come from pg_attribute
# unquoted; pg_get_indexdef is kept for expression parts only.
_INDEXES_SQL = """
SELECT
    n.nspname AS schemaname,
    t.relname AS tablename,
    i.relname AS indexname,
    pg_get_indexdef(ix.indexrelid) AS indexdef,
    am.amname AS index_type,
    ix.indisunique AS is_unique,
    ix.indisprimary AS is_primary,
    k.ord AS key_position,
    ix.indkey[k.ord - 1] AS attnum,
    a.attname AS column_name,
    CASE WHEN ix.indkey[k.ord - 1] = 0
        THEN pg_get_indexdef(ix.indexrelid, k.ord, true)
    END AS expression,
    obj_description(i.oid, 'pg_class') AS comment
FROM pg_catalog.pg_index ix
    JOIN pg_catalog.pg_class i ON i.oid = ix.indexrelid
    JOIN pg_catalog.pg_class t ON t.oid = ix.indrelid
    JOIN pg_catalog.pg_namespace n ON n.oid = t.relnamespace
    JOIN pg_catalog.pg_am am ON am.oid = i.relam
    CROSS JOIN LATERAL generate_series(1, {key_count}) AS k(ord)
    LEFT JOIN pg_catalog.pg_attribute a
        ON a.attrelid = ix.indrelid AND a.attnum = ix.indkey[k.ord - 1]
WHERE {schema_filter}
ORDER BY n.nspname, t.relname, i.relname, k.ord
"""

_FOREIGN_KEYS_SQL = """
SELECT
    n.nspname AS table_schema,
    t.relname AS table_name,
    c.conname AS constraint_name,
    a.attname AS column_name,
    rn.nspname AS referenced_schema,
    rt.relname AS referenced_table,
    ra.attname AS referenced_column,
    c.confdeltype AS delete_rule,
    c.confupdtype AS update_rule,
    c.confmatchtype AS match_option,
    k.ord AS ordinal_position
FROM pg_catalog.pg_constraint c
    JOIN pg_catalog.pg_class t ON t.oid = c.conrelid
    JOIN pg_catalog.pg_namespace n ON n.oid = t.relnamespace
    JOIN pg_catalog.pg_class rt ON rt.oid = c.confrelid
    JOIN pg_catalog.pg_namespace rn ON rn.oid = rt.relnamespace
    CROSS JOIN LATERAL unnest(c.conkey, c.confkey) WITH ORDINALITY AS k(attnum, ref_attnum, ord)
    JOIN pg_catalog.pg_attribute a ON a.attrelid = c.conrelid AND a.attnum = k.attnum
    JOIN pg_catalog.pg_attribute ra ON ra.attrelid = c.confrelid AND ra.attnum = k.ref_attnum
WHERE c.contype = 'f' AND {schema_filter}
ORDER BY n.nspname, t.relname, c.conname, k.ord
"""

_TABLES_SQL = """
SELECT tbl.schemaname, tbl.tablename,
    pg_table_size(pc.oid) AS data_size,
    pg_indexes_size(pc.oid) AS index_size,
    GREATEST(pc.reltuples::bigint, 0::bigint) AS estimate,
    obj_description(pc.oid, 'pg_class') AS comment,
    tbl.tableowner
FROM pg_catalog.pg_tables tbl
    LEFT JOIN pg_class AS pc
    ON pc.oid = format('%s.%s', quote_ident(tbl.schemaname), quote_ident(tbl.tablename))::regclass
WHERE {schema_filter}
ORDER BY tbl.schemaname, tbl.tablename
"""

_VIEWS_SQL = """
SELECT schemaname, viewname, definition,
    obj_description(
        format('%s.%s', quote_ident(schemaname), quote_ident(viewname))::regclass, 'pg_class'
    ) AS comment
FROM pg_catalog.pg_views
WHERE {schema_filter}
ORDER BY schemaname, viewname
"""

_MATERIALIZED_VIEWS_SQL = """
SELECT schemaname, matviewname, definition,
    obj_description(
        format('%s.%s', quote_ident(schemaname), quote_ident(matviewname))::regclass, 'pg_class'
    ) AS comment
FROM pg_catalog.pg_matviews
WHERE {schema_filter}
ORDER BY schemaname, matviewname
"""

# Routines owned by an extension are part of that extension, not the schema.
_ROUTINES_SQL = """
SELECT n.nspname AS schema_name, p.proname AS routine_name, p.prokind AS routine_kind,
    pg_get_functiondef(p.oid) AS definition
FROM pg_catalog.pg_proc p
    JOIN pg_catalog.pg_namespace n ON n.oid = p.pronamespace
WHERE p.prokind IN ('f', 'p')
    AND NOT EXISTS (
        SELECT 1 FROM pg_catalog.pg_depend d
        WHERE d.classid = 'pg_catalog.pg_proc'::regclass AND d.objid = p.oid AND d.deptype = 'e'
    )
    AND {schema_filter}
ORDER BY n.nspname, p.proname, p.oid
"""

_EXTENSIONS_SQL = """
SELECT e.extname, n.nspname AS schema_name, e.extversion,
    obj_description(e.oid, 'pg_extension') AS description
FROM pg_catalog.pg_extension e
    JOIN pg_catalog.pg_namespace n ON n.oid = e.extnamespace
ORDER BY e.extname
"""


def column_type(row: dict) -> str:
    data_type = row["data_type"]
    if data_type == "USER-DEFINED":
        return f"{row['udt_schema'] or ''}.{row['udt_name'] or ''}"
    if data_type == "ARRAY":
        return row["udt_name"] or ""
    if data_type in ("character", "character varying", "bit", "bit varying"):
        length = row["character_maximum_length"]
        return f"{data_type}({length})" if length is not None else data_type
    return data_type


def _decode(codes: dict[str, str], raw: str, what: str) -> str:
    try:
        return codes[raw]
    except KeyError:
        raise UnrecognizedDataError(f"unrecognized {what} code {raw!r}") from None


class PostgresSchemaSource:
    """Catalog queries for PostgreSQL; every schema outside the denylist is synced."""

    def __init__(
        self, executor: QueryExecutor, database_name: str, profile: EngineProfile
    ) -> None:
        self.executor = executor
        self.database_name = database_name
        self.profile = profile

    def _schema_filter(self, column: str) -> tuple[str, dict[str, object]]:
        clauses = [f"{column} <> ALL(:system_schemas)"]
        params: dict[str, object] = {"system_schemas": sorted(self.profile.system_schemas)}
        for i, prefix in enumerate(self.profile.system_schema_prefixes):
            clauses.append(f"{column} NOT LIKE :system_prefix_{i}")
            params[f"system_prefix_{i}"] = prefix.replace("_", "\\_") + "%"
        return " AND ".join(clauses), params

    def _fetch(self, template: str, column: str, **fields: str) -> list[dict]:
        schema_filter, params = self._schema_filter(column)
        sql = template.format(schema_filter=schema_filter, **fields)
        return self.executor.fetch_all(sql, params)

    @contextmanager
    def snapshot(self) -> Iterator[None]:
        with self.executor.transaction():
            self.executor.execute("SET TRANSACTION ISOLATION LEVEL REPEATABLE READ, READ ONLY")
            yield

    def get_version(self) -> ServerVersion:
        rows = self.executor.fetch_all("SHOW server_version_num")
        if not rows:
            raise UnrecognizedDataError("SHOW server_version_num returned no rows")
        return parse_server_version_num(next(iter(rows[0].values())))

    def load_database(self) -> list[DatabaseSchemaMetadata]:
        return [
            DatabaseSchemaMetadata(
                name=row["datname"],
                character_set=row["character_set"] or "",
                collation=row["datcollate"] or "",
                owner=row["db_owner"] or "",
            )
            for row in self.executor.fetch_all(_DATABASES_SQL)
        ]

    def load_instance_roles(self) -> list[InstanceRoleMetadata]:
        return [
            InstanceRoleMetadata(
                name=row["rolname"],
                attributes=[label for flag, label in ROLE_ATTRIBUTES if row.get(flag)],
            )
            for row in self.executor.fetch_all(_ROLES_SQL)
        ]

    def load_schema(self) -> list[SchemaInfo]:
        return [
            SchemaInfo(
                name=row["nspname"],
                owner=row["schema_owner"] or "",
                comment=row["schema_comment"] or "",
            )
            for row in self._fetch(_SCHEMAS_SQL, "nspname")
        ]

    def load_column(self) -> dict[TableKey, list[ColumnMetadata]]:
        column_map: dict[TableKey, list[ColumnMetadata]] = {}
        for row in self._fetch(_COLUMNS_SQL, "cols.table_schema"):
            nullable = convert_yes_no(row["is_nullable"])
            identity = parse_identity_generation(row["identity_generation"])
            column = ColumnMetadata(
                name=row["column_name"],
                position=int(row["ordinal_position"]),
                type=column_type(row),
                default=normalize_postgres_default(row["column_default"], nullable, identity),
                nullable=nullable,
                collation=row["collation_name"] or "",
                comment=row["column_comment"] or "",
                identity_generation=identity,
            )
            key = TableKey(row["table_schema"], row["table_name"])
            column_map.setdefault(key, []).append(column)
        return column_map

    def load_index(self) -> dict[TableKey, list[IndexMetadata]]:
        version = self.get_version()
        key_count = "ix.indnkeyatts"
        if version.release < INCLUDE_COLUMNS_RELEASE:
            key_count = "ix.indnatts"
        logger.debug("Counting index key parts with %s on server %s", key_count, version.number)
        rows = self._fetch(_INDEXES_SQL, "n.nspname", key_count=key_count)
        return group_index_rows(
            IndexPartRow(
                table=TableKey(row["schemaname"], row["tablename"]),
                index_name=row["indexname"],
                # attnum 0 marks an expression key part.
                column_name=row["column_name"] if row["attnum"] else None,
                expression=None if row["attnum"] else row["expression"],
                index_type=row["index_type"] or "",
                unique=bool(row["is_unique"]),
                primary=bool(row["is_primary"]),
                comment=row["comment"] or "",
                definition=row["indexdef"] or "",
                position=row["key_position"],
            )
            for row in rows
        )

    def load_foreign_keys(self) -> dict[TableKey, list[ForeignKeyMetadata]]:
        rows = self._fetch(_FOREIGN_KEYS_SQL, "n.nspname")
        return group_foreign_key_rows(
            ForeignKeyColumnRow(
                table=TableKey(row["table_schema"], row["table_name"]),
                constraint_name=row["constraint_name"],
                column_name=row["column_name"],
                referenced_schema=row["referenced_schema"],
                referenced_table=row["referenced_table"],
                referenced_column=row["referenced_column"],
                on_delete=_decode(FOREIGN_KEY_ACTIONS, row["delete_rule"], "foreign key action"),
                on_update=_decode(FOREIGN_KEY_ACTIONS, row["update_rule"], "foreign key action"),
                match_type=_decode(
                    FOREIGN_KEY_MATCH_TYPES, row["match_option"], "foreign key match type"
                ),
                position=row["ordinal_position"],
            )
            for row in rows
        )

    def load_tables_and_views(self) -> TableListing:
        listing = TableListing()
        for row in self._fetch(_TABLES_SQL, "tbl.schemaname"):
            listing.tables.setdefault(row["schemaname"], []).append(
                TableMetadata(
                    name=row["tablename"],
                    row_count=int(row["estimate"] or 0),
                    data_size=int(row["data_size"] or 0),
                    index_size=int(row["index_size"] or 0),
                    comment=row["comment"] or "",
                    owner=row["tableowner"] or "",
                )
            )
        for row in self._fetch(_VIEWS_SQL, "schemaname"):
            listing.views.setdefault(row["schemaname"], []).append(
                ViewMetadata(
                    name=row["viewname"],
                    definition=row["definition"] or "",
                    comment=row["comment"] or "",
                )
            )
        for row in self._fetch(_MATERIALIZED_VIEWS_SQL, "schemaname"):
            listing.materialized_views.setdefault(row["schemaname"], []).append(
                MaterializedViewMetadata(
                    name=row["matviewname"],
                    definition=row["definition"] or "",
                    comment=row["comment"] or "",
                )
            )
        return listing

    def load_routines(self) -> RoutineListing:
        listing = RoutineListing()
        for row in self._fetch(_ROUTINES_SQL, "n.nspname"):
            schema_name = row["schema_name"]
            name = row["routine_name"]
            definition = row["definition"] or ""
            if row["routine_kind"] == "p":
                listing.procedures.setdefault(schema_name, []).append(
                    ProcedureMetadata(name=name, definition=definition)
                )
            elif row["routine_kind"] == "f":
                listing.functions.setdefault(schema_name, []).append(
                    FunctionMetadata(name=name, definition=definition)
                )
            else:
                raise UnrecognizedDataError(f"unexpected prokind {row['routine_kind']!r}")
        return listing

    def load_extensions(self) -> list[ExtensionMetadata]:
        return [
            ExtensionMetadata(
                name=row["extname"],
                schema_name=row["schema_name"] or "",
                version=row["extversion"] or "",
                description=row["description"] or "",
            )
            for row in self.executor.fetch_all(_EXTENSIONS_SQL)
        ]
