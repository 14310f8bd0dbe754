from __future__ import annotations

import logging
from contextlib import AbstractContextManager, nullcontext
from typing import Any

from dbschema_sync.assembler import (
    ForeignKeyColumnRow,
    IndexPartRow,
    TableKey,
    group_foreign_key_rows,
    group_index_rows,
)
from dbschema_sync.defaults import (
    convert_yes_no,
    normalize_default,
    normalize_mariadb_default,
    parse_on_update,
)
from dbschema_sync.dialect import EngineProfile, IndexDialect
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
    ProcedureMetadata,
    TableMetadata,
    ViewMetadata,
)
from dbschema_sync.sources.base import RoutineListing, SchemaInfo, TableListing
from dbschema_sync.version import ServerVersion, parse_version

logger = logging.getLogger(__name__)

# MySQL databases have a single, unnamed schema.
SCHEMA = ""

BASE_TABLE_TYPE = "BASE TABLE"
VIEW_TABLE_TYPE = "VIEW"
PRIMARY_INDEX_NAME = "PRIMARY"

# MariaDB quotes literal defaults and reports a missing default as NULL from here on.
MARIADB_QUOTED_DEFAULTS_RELEASE = (10, 2, 7)

_DATABASES_SQL = """
SELECT
    SCHEMA_NAME AS SCHEMA_NAME,
    DEFAULT_CHARACTER_SET_NAME AS DEFAULT_CHARACTER_SET_NAME,
    DEFAULT_COLLATION_NAME AS DEFAULT_COLLATION_NAME
FROM information_schema.SCHEMATA
ORDER BY SCHEMA_NAME
"""

_COLUMNS_SQL = """
SELECT
    TABLE_NAME AS TABLE_NAME,
    IFNULL(COLUMN_NAME, '') AS COLUMN_NAME,
    ORDINAL_POSITION AS ORDINAL_POSITION,
    COLUMN_DEFAULT AS COLUMN_DEFAULT,
    IS_NULLABLE AS IS_NULLABLE,
    COLUMN_TYPE AS COLUMN_TYPE,
    IFNULL(CHARACTER_SET_NAME, '') AS CHARACTER_SET_NAME,
    IFNULL(COLLATION_NAME, '') AS COLLATION_NAME,
    COLUMN_COMMENT AS COLUMN_COMMENT,
    EXTRA AS EXTRA
FROM information_schema.COLUMNS
WHERE TABLE_SCHEMA = :database
ORDER BY TABLE_NAME, ORDINAL_POSITION
"""

_INDEXES_SQL = """
SELECT
    TABLE_NAME AS TABLE_NAME,
    INDEX_NAME AS INDEX_NAME,
    COLUMN_NAME AS COLUMN_NAME,
    IFNULL(SUB_PART, -1) AS SUB_PART,
    {expression} AS EXPRESSION,
    INDEX_TYPE AS INDEX_TYPE,
    CASE NON_UNIQUE WHEN 0 THEN 1 ELSE 0 END AS IS_UNIQUE,
    {visible} AS IS_VISIBLE,
    INDEX_COMMENT AS INDEX_COMMENT,
    SEQ_IN_INDEX AS SEQ_IN_INDEX
FROM information_schema.STATISTICS
WHERE TABLE_SCHEMA = :database
ORDER BY TABLE_NAME, INDEX_NAME, SEQ_IN_INDEX
"""

_FOREIGN_KEYS_SQL = """
SELECT
    fks.TABLE_NAME AS TABLE_NAME,
    fks.CONSTRAINT_NAME AS CONSTRAINT_NAME,
    kcu.COLUMN_NAME AS COLUMN_NAME,
    kcu.ORDINAL_POSITION AS ORDINAL_POSITION,
    kcu.REFERENCED_TABLE_SCHEMA AS REFERENCED_TABLE_SCHEMA,
    fks.REFERENCED_TABLE_NAME AS REFERENCED_TABLE_NAME,
    kcu.REFERENCED_COLUMN_NAME AS REFERENCED_COLUMN_NAME,
    fks.DELETE_RULE AS DELETE_RULE,
    fks.UPDATE_RULE AS UPDATE_RULE,
    fks.MATCH_OPTION AS MATCH_OPTION
FROM information_schema.REFERENTIAL_CONSTRAINTS fks
    JOIN information_schema.KEY_COLUMN_USAGE kcu
    ON fks.CONSTRAINT_SCHEMA = kcu.TABLE_SCHEMA
        AND fks.TABLE_NAME = kcu.TABLE_NAME
        AND fks.CONSTRAINT_NAME = kcu.CONSTRAINT_NAME
WHERE kcu.POSITION_IN_UNIQUE_CONSTRAINT IS NOT NULL AND fks.CONSTRAINT_SCHEMA = :database
ORDER BY fks.TABLE_NAME, fks.CONSTRAINT_NAME, kcu.ORDINAL_POSITION
"""

_VIEWS_SQL = """
SELECT
    TABLE_NAME AS TABLE_NAME,
    VIEW_DEFINITION AS VIEW_DEFINITION
FROM information_schema.VIEWS
WHERE TABLE_SCHEMA = :database
ORDER BY TABLE_NAME
"""

_TABLES_SQL = """
SELECT
    TABLE_NAME AS TABLE_NAME,
    TABLE_TYPE AS TABLE_TYPE,
    IFNULL(ENGINE, '') AS ENGINE,
    TABLE_COLLATION AS TABLE_COLLATION,
    CAST(IFNULL(TABLE_ROWS, 0) AS SIGNED) AS TABLE_ROWS,
    CAST(IFNULL(DATA_LENGTH, 0) AS SIGNED) AS DATA_LENGTH,
    CAST(IFNULL(INDEX_LENGTH, 0) AS SIGNED) AS INDEX_LENGTH,
    CAST(IFNULL(DATA_FREE, 0) AS SIGNED) AS DATA_FREE,
    IFNULL(CREATE_OPTIONS, '') AS CREATE_OPTIONS,
    IFNULL(TABLE_COMMENT, '') AS TABLE_COMMENT
FROM information_schema.TABLES
WHERE TABLE_SCHEMA = :database
ORDER BY TABLE_NAME
"""

_ROUTINES_SQL = """
SELECT
    ROUTINE_NAME AS ROUTINE_NAME,
    ROUTINE_TYPE AS ROUTINE_TYPE
FROM information_schema.ROUTINES
WHERE ROUTINE_SCHEMA = :database AND ROUTINE_TYPE IN ('FUNCTION', 'PROCEDURE')
ORDER BY ROUTINE_TYPE, ROUTINE_NAME
"""


def quote_identifier(name: str) -> str:
    return "`" + name.replace("`", "``") + "`"


def find_column(row: dict[str, Any], name: str) -> Any:
    """Look up a result column case-insensitively; SHOW output does not preserve case."""
    for key, value in row.items():
        if key.lower() == name.lower():
            return value
    raise UnrecognizedDataError(f"column {name!r} not found in result columns {list(row)}")


class MySQLSchemaSource:
    """Catalog queries for MySQL-family servers (MySQL, MariaDB, TiDB)."""

    def __init__(
        self, executor: QueryExecutor, database_name: str, profile: EngineProfile
    ) -> None:
        self.executor = executor
        self.database_name = database_name
        self.profile = profile

    def _params(self) -> dict[str, str]:
        return {"database": self.database_name}

    def snapshot(self) -> AbstractContextManager[None]:
        # Not transactional: a concurrent DDL may show up in some queries and not others.
        return nullcontext()

    def get_version(self) -> ServerVersion:
        rows = self.executor.fetch_all("SELECT VERSION() AS version")
        if not rows:
            raise UnrecognizedDataError("SELECT VERSION() returned no rows")
        return parse_version(str(find_column(rows[0], "version")))

    def load_database(self) -> list[DatabaseSchemaMetadata]:
        return [
            DatabaseSchemaMetadata(
                name=row["SCHEMA_NAME"],
                character_set=row["DEFAULT_CHARACTER_SET_NAME"] or "",
                collation=row["DEFAULT_COLLATION_NAME"] or "",
            )
            for row in self.executor.fetch_all(_DATABASES_SQL)
        ]

    def load_schema(self) -> list[SchemaInfo]:
        return [SchemaInfo(name=SCHEMA)]

    def load_column(self) -> dict[TableKey, list[ColumnMetadata]]:
        version = self.get_version()
        normalize = normalize_default
        if version.has_flavor("MariaDB") and version.release >= MARIADB_QUOTED_DEFAULTS_RELEASE:
            normalize = normalize_mariadb_default
        column_map: dict[TableKey, list[ColumnMetadata]] = {}
        for row in self.executor.fetch_all(_COLUMNS_SQL, self._params()):
            nullable = convert_yes_no(row["IS_NULLABLE"])
            extra = row["EXTRA"] or ""
            column = ColumnMetadata(
                name=row["COLUMN_NAME"],
                position=int(row["ORDINAL_POSITION"]),
                type=row["COLUMN_TYPE"],
                default=normalize(row["COLUMN_DEFAULT"], extra, nullable),
                on_update=parse_on_update(extra),
                nullable=nullable,
                character_set=row["CHARACTER_SET_NAME"],
                collation=row["COLLATION_NAME"],
                comment=row["COLUMN_COMMENT"] or "",
            )
            column_map.setdefault(TableKey(SCHEMA, row["TABLE_NAME"]), []).append(column)
        return column_map

    def index_query(self, dialect: IndexDialect) -> str:
        return _INDEXES_SQL.format(
            expression="EXPRESSION" if dialect.has_expression_column else "NULL",
            visible=(
                "CASE IS_VISIBLE WHEN 'YES' THEN 1 ELSE 0 END"
                if dialect.has_visibility_column
                else "1"
            ),
        )

    def load_index(self) -> dict[TableKey, list[IndexMetadata]]:
        dialect = self.profile.index_dialect(self.get_version())
        rows = self.executor.fetch_all(self.index_query(dialect), self._params())
        return group_index_rows(
            IndexPartRow(
                table=TableKey(SCHEMA, row["TABLE_NAME"]),
                index_name=row["INDEX_NAME"],
                column_name=row["COLUMN_NAME"],
                expression=row["EXPRESSION"],
                key_length=int(row["SUB_PART"]),
                index_type=row["INDEX_TYPE"] or "",
                unique=int(row["IS_UNIQUE"]) == 1,
                primary=row["INDEX_NAME"] == PRIMARY_INDEX_NAME,
                visible=int(row["IS_VISIBLE"]) == 1,
                comment=row["INDEX_COMMENT"] or "",
                position=row.get("SEQ_IN_INDEX"),
            )
            for row in rows
        )

    def load_foreign_keys(self) -> dict[TableKey, list[ForeignKeyMetadata]]:
        rows = self.executor.fetch_all(_FOREIGN_KEYS_SQL, self._params())
        return group_foreign_key_rows(
            ForeignKeyColumnRow(
                table=TableKey(SCHEMA, row["TABLE_NAME"]),
                constraint_name=row["CONSTRAINT_NAME"],
                column_name=row["COLUMN_NAME"],
                # Same-database references stay in the implicit schema.
                referenced_schema=(
                    ""
                    if row.get("REFERENCED_TABLE_SCHEMA") in (None, self.database_name)
                    else row["REFERENCED_TABLE_SCHEMA"]
                ),
                referenced_table=row["REFERENCED_TABLE_NAME"],
                referenced_column=row["REFERENCED_COLUMN_NAME"],
                on_delete=row["DELETE_RULE"] or "",
                on_update=row["UPDATE_RULE"] or "",
                match_type=row["MATCH_OPTION"] or "",
                position=row.get("ORDINAL_POSITION"),
            )
            for row in rows
        )

    def load_tables_and_views(self) -> TableListing:
        views: dict[str, ViewMetadata] = {}
        for row in self.executor.fetch_all(_VIEWS_SQL, self._params()):
            views[row["TABLE_NAME"]] = ViewMetadata(
                name=row["TABLE_NAME"], definition=row["VIEW_DEFINITION"] or ""
            )

        tables: list[TableMetadata] = []
        for row in self.executor.fetch_all(_TABLES_SQL, self._params()):
            table_name = row["TABLE_NAME"]
            table_type = row["TABLE_TYPE"]
            comment = row["TABLE_COMMENT"] or ""
            if table_type == VIEW_TABLE_TYPE:
                if table_name in views:
                    views[table_name] = views[table_name].model_copy(update={"comment": comment})
            elif table_type == BASE_TABLE_TYPE:
                tables.append(
                    TableMetadata(
                        name=table_name,
                        engine=row["ENGINE"],
                        collation=row["TABLE_COLLATION"],
                        row_count=int(row["TABLE_ROWS"]),
                        data_size=int(row["DATA_LENGTH"]),
                        index_size=int(row["INDEX_LENGTH"]),
                        data_free=int(row["DATA_FREE"]),
                        create_options=row["CREATE_OPTIONS"],
                        comment=comment,
                    )
                )
            else:
                raise UnrecognizedDataError(
                    f"unexpected table_type {table_type!r} for table {table_name!r}"
                )

        return TableListing(tables={SCHEMA: tables}, views={SCHEMA: list(views.values())})

    def _show_create(self, kind: str, name: str) -> str:
        sql = f"SHOW CREATE {kind} {quote_identifier(self.database_name)}.{quote_identifier(name)}"
        rows = self.executor.fetch_all(sql)
        if not rows:
            raise UnrecognizedDataError(f"SHOW CREATE {kind} returned no rows for {name!r}")
        # NULL when the user lacks privileges to see the body.
        return find_column(rows[0], f"Create {kind.title()}") or ""

    def load_routines(self) -> RoutineListing:
        functions: list[FunctionMetadata] = []
        procedures: list[ProcedureMetadata] = []
        for row in self.executor.fetch_all(_ROUTINES_SQL, self._params()):
            name = row["ROUTINE_NAME"]
            routine_type = row["ROUTINE_TYPE"]
            if routine_type.upper() == "PROCEDURE":
                procedures.append(
                    ProcedureMetadata(name=name, definition=self._show_create("PROCEDURE", name))
                )
            elif routine_type.upper() == "FUNCTION":
                functions.append(
                    FunctionMetadata(name=name, definition=self._show_create("FUNCTION", name))
                )
            else:
                raise UnrecognizedDataError(f"unexpected routine_type {routine_type!r}")
        logger.debug(
            "Loaded %d function(s) and %d procedure(s) from %s",
            len(functions),
            len(procedures),
            self.database_name,
        )
        return RoutineListing(functions={SCHEMA: functions}, procedures={SCHEMA: procedures})

    def load_extensions(self) -> list[ExtensionMetadata]:
        return []

    def load_instance_roles(self) -> list[InstanceRoleMetadata]:
        return []
