from contextlib import contextmanager
from unittest.mock import MagicMock

import pytest

from dbschema_sync.assembler import TableKey
from dbschema_sync.dialect import get_profile
from dbschema_sync.errors import UnrecognizedDataError
from dbschema_sync.models import DefaultKind, Engine, IdentityGeneration
from dbschema_sync.sources.postgres import PostgresSchemaSource, column_type

MARKERS = [
    ("SHOW server_version_num", "version"),
    ("FROM pg_database", "databases"),
    ("FROM pg_catalog.pg_roles", "roles"),
    ("FROM pg_catalog.pg_namespace", "schemas"),
    ("FROM information_schema.columns", "columns"),
    ("FROM pg_catalog.pg_index", "indexes"),
    ("FROM pg_catalog.pg_constraint", "foreign_keys"),
    ("FROM pg_catalog.pg_tables", "tables"),
    ("FROM pg_catalog.pg_views", "views"),
    ("FROM pg_catalog.pg_matviews", "materialized_views"),
    ("FROM pg_catalog.pg_proc", "routines"),
    ("FROM pg_catalog.pg_extension", "extensions"),
]


def _executor(**results):
    results.setdefault("version", [{"server_version_num": "160002"}])
    executor = MagicMock()
    executor.calls = []

    def fetch_all(sql, params=None):
        for marker, key in MARKERS:
            if marker in sql:
                executor.calls.append((key, sql, params))
                return results.get(key, [])
        raise AssertionError(f"unexpected query: {sql}")

    executor.fetch_all.side_effect = fetch_all
    return executor


def _source(executor):
    return PostgresSchemaSource(executor, "app", get_profile(Engine.POSTGRES))


def _column_row(schema, table, name, position, data_type="integer", **overrides):
    row = {
        "table_schema": schema,
        "table_name": table,
        "column_name": name,
        "data_type": data_type,
        "character_maximum_length": None,
        "ordinal_position": position,
        "column_default": None,
        "is_nullable": "YES",
        "collation_name": None,
        "udt_schema": "pg_catalog",
        "udt_name": "int4",
        "identity_generation": None,
        "column_comment": None,
    }
    row.update(overrides)
    return row


def _index_row(table, index, attnum, part, position, **overrides):
    row = {
        "schemaname": "public",
        "tablename": table,
        "indexname": index,
        "indexdef": f"CREATE INDEX {index} ON public.{table}",
        "index_type": "btree",
        "is_unique": False,
        "is_primary": False,
        "key_position": position,
        "attnum": attnum,
        "column_name": part if attnum else None,
        "expression": None if attnum else part,
        "comment": None,
    }
    row.update(overrides)
    return row


def _fk_row(table, name, column, ref_column, position, **overrides):
    row = {
        "table_schema": "public",
        "table_name": table,
        "constraint_name": name,
        "column_name": column,
        "referenced_schema": "public",
        "referenced_table": "orders",
        "referenced_column": ref_column,
        "delete_rule": "c",
        "update_rule": "a",
        "match_option": "s",
        "ordinal_position": position,
    }
    row.update(overrides)
    return row


def _routine_row(name, kind, definition):
    return {
        "schema_name": "public",
        "routine_name": name,
        "routine_kind": kind,
        "definition": definition,
    }


class TestColumnType:
    def test_user_defined(self):
        row = _column_row(
            "public", "t", "mood", 1, "USER-DEFINED", udt_schema="public", udt_name="mood"
        )
        assert column_type(row) == "public.mood"

    def test_array(self):
        row = _column_row("public", "t", "tags", 1, "ARRAY", udt_name="_text")
        assert column_type(row) == "_text"

    def test_varchar_length(self):
        row = _column_row("public", "t", "c", 1, "character varying", character_maximum_length=64)
        assert column_type(row) == "character varying(64)"

    def test_unbounded_varchar(self):
        row = _column_row("public", "t", "c", 1, "character varying")
        assert column_type(row) == "character varying"

    def test_plain(self):
        assert column_type(_column_row("public", "t", "c", 1, "timestamp with time zone")) == (
            "timestamp with time zone"
        )


class TestPostgresSnapshot:
    def test_repeatable_read_inside_transaction(self):
        executor = _executor()
        events = []

        @contextmanager
        def transaction():
            events.append("begin")
            yield
            events.append("commit")

        executor.transaction.side_effect = transaction
        executor.execute.side_effect = lambda sql, params=None: events.append(sql)

        with _source(executor).snapshot():
            events.append("body")

        assert events[0] == "begin"
        assert "REPEATABLE READ" in events[1]
        assert "READ ONLY" in events[1]
        assert events[2:] == ["body", "commit"]


class TestPostgresVersion:
    def test_server_version_num(self):
        executor = _executor(version=[{"server_version_num": "160002"}])
        assert _source(executor).get_version().number == "16.0.2"

    def test_garbage(self):
        executor = _executor(version=[{"server_version_num": "sixteen"}])
        with pytest.raises(UnrecognizedDataError):
            _source(executor).get_version()


class TestPostgresInstance:
    def test_databases(self):
        executor = _executor(
            databases=[
                {
                    "datname": "app",
                    "character_set": "UTF8",
                    "datcollate": "en_US.utf8",
                    "db_owner": "alice",
                },
            ]
        )
        db = _source(executor).load_database()[0]
        assert db.name == "app"
        assert db.character_set == "UTF8"
        assert db.collation == "en_US.utf8"
        assert db.owner == "alice"

    def test_roles(self):
        executor = _executor(
            roles=[
                {
                    "rolname": "admin",
                    "rolsuper": True,
                    "rolcreaterole": True,
                    "rolcreatedb": False,
                    "rolcanlogin": True,
                    "rolreplication": False,
                    "rolbypassrls": False,
                },
            ]
        )
        role = _source(executor).load_instance_roles()[0]
        assert role.name == "admin"
        assert role.attributes == ["Superuser", "Create role", "Login"]

    def test_extensions(self):
        executor = _executor(
            extensions=[
                {
                    "extname": "pgcrypto",
                    "schema_name": "public",
                    "extversion": "1.3",
                    "description": "cryptographic functions",
                }
            ]
        )
        ext = _source(executor).load_extensions()[0]
        assert ext.name == "pgcrypto"
        assert ext.schema_name == "public"
        assert ext.version == "1.3"


class TestPostgresSchemaFilter:
    def test_system_schemas_excluded(self):
        executor = _executor(
            schemas=[
                {
                    "nspname": "public",
                    "schema_owner": "pg_database_owner",
                    "schema_comment": "standard",
                },
            ]
        )
        schemas = _source(executor).load_schema()
        assert schemas[0].name == "public"
        assert schemas[0].comment == "standard"

        _, sql, params = executor.calls[0]
        assert "nspname <> ALL(:system_schemas)" in sql
        assert "pg_catalog" in params["system_schemas"]
        assert "pg_toast" in params["system_schemas"]
        assert "pg\\_temp\\_%" in params.values()
        assert "{schema_filter}" not in sql


class TestPostgresColumns:
    def test_columns(self):
        executor = _executor(
            columns=[
                _column_row(
                    "public",
                    "orders",
                    "id",
                    1,
                    "bigint",
                    is_nullable="NO",
                    identity_generation="ALWAYS",
                ),
                _column_row(
                    "public",
                    "orders",
                    "status",
                    2,
                    "text",
                    is_nullable="NO",
                    column_default="'new'::text",
                    collation_name="C",
                ),
                _column_row("public", "orders", "note", 3, "text", column_comment="free text"),
                _column_row("audit", "orders", "id", 1),
            ]
        )
        result = _source(executor).load_column()

        orders = result[TableKey("public", "orders")]
        assert [c.name for c in orders] == ["id", "status", "note"]
        assert orders[0].identity_generation is IdentityGeneration.ALWAYS
        assert orders[0].default is None
        assert orders[1].default.kind is DefaultKind.EXPRESSION
        assert orders[1].default.value == "'new'::text"
        assert orders[1].collation == "C"
        assert orders[2].default.kind is DefaultKind.NULL
        assert orders[2].comment == "free text"
        assert len(result[TableKey("audit", "orders")]) == 1


class TestPostgresIndexes:
    def test_key_parts(self):
        executor = _executor(
            indexes=[
                _index_row("users", "users_lower_email_id", 0, "lower(email)", 1),
                _index_row("users", "users_lower_email_id", 1, "id", 2),
                _index_row("users", "users_pkey", 1, "id", 1, is_unique=True, is_primary=True),
            ]
        )
        indexes = {i.name: i for i in _source(executor).load_index()[TableKey("public", "users")]}

        functional = indexes["users_lower_email_id"]
        assert functional.expressions == ["(lower(email))", "id"]
        assert functional.key_length == [-1, -1]
        assert functional.type == "btree"
        assert functional.definition.startswith("CREATE INDEX")

        pkey = indexes["users_pkey"]
        assert pkey.primary is True
        assert pkey.unique is True

    def test_column_names_come_unquoted(self):
        executor = _executor(indexes=[_index_row("orders", "orders_by_order", 2, "Order", 1)])
        index = _source(executor).load_index()[TableKey("public", "orders")][0]

        assert index.expressions == ["Order"]
        _, sql, _ = executor.calls[-1]
        assert "a.attname AS column_name" in sql
        assert "pg_get_indexdef(ix.indexrelid, k.ord, true)" in sql

    @pytest.mark.parametrize(
        "version_num, key_count",
        [("160002", "ix.indnkeyatts"), ("110000", "ix.indnkeyatts"), ("100005", "ix.indnatts")],
    )
    def test_key_count_follows_server_version(self, version_num, key_count):
        executor = _executor(version=[{"server_version_num": version_num}])
        _source(executor).load_index()

        _, sql, _ = executor.calls[-1]
        assert f"generate_series(1, {key_count})" in sql
        assert "{key_count}" not in sql


class TestPostgresForeignKeys:
    def test_decoded_actions(self):
        executor = _executor(
            foreign_keys=[
                _fk_row("items", "items_order_fk", "order_id", "id", 1),
                _fk_row("items", "items_order_fk", "region", "region", 2),
            ]
        )
        fk = _source(executor).load_foreign_keys()[TableKey("public", "items")][0]
        assert fk.columns == ["order_id", "region"]
        assert fk.referenced_columns == ["id", "region"]
        assert fk.referenced_schema == "public"
        assert fk.on_delete == "CASCADE"
        assert fk.on_update == "NO ACTION"
        assert fk.match_type == "SIMPLE"

    def test_unknown_action_code(self):
        row = _fk_row("items", "fk", "order_id", "id", 1, delete_rule="x")
        executor = _executor(foreign_keys=[row])
        with pytest.raises(UnrecognizedDataError, match="foreign key action"):
            _source(executor).load_foreign_keys()


class TestPostgresTablesAndViews:
    def test_listing(self):
        executor = _executor(
            tables=[
                {
                    "schemaname": "public",
                    "tablename": "orders",
                    "data_size": 8192,
                    "index_size": 16384,
                    "estimate": 10,
                    "comment": None,
                    "tableowner": "alice",
                }
            ],
            views=[
                {
                    "schemaname": "public",
                    "viewname": "recent",
                    "definition": " SELECT 1;",
                    "comment": "v",
                }
            ],
            materialized_views=[
                {
                    "schemaname": "reports",
                    "matviewname": "totals",
                    "definition": " SELECT 2;",
                    "comment": None,
                }
            ],
        )
        listing = _source(executor).load_tables_and_views()

        table = listing.tables["public"][0]
        assert table.name == "orders"
        assert table.row_count == 10
        assert table.data_size == 8192
        assert table.owner == "alice"
        assert listing.views["public"][0].comment == "v"
        assert listing.materialized_views["reports"][0].name == "totals"
        assert "reports" not in listing.tables


class TestPostgresRoutines:
    def test_functions_and_procedures(self):
        executor = _executor(
            routines=[
                _routine_row("add", "f", "CREATE FUNCTION"),
                _routine_row("purge", "p", None),
            ]
        )
        routines = _source(executor).load_routines()
        assert routines.functions["public"][0].definition == "CREATE FUNCTION"
        assert routines.procedures["public"][0].name == "purge"
        assert routines.procedures["public"][0].definition == ""

    def test_unknown_kind(self):
        executor = _executor(
            routines=[_routine_row("agg", "a", "")]
        )
        with pytest.raises(UnrecognizedDataError):
            _source(executor).load_routines()
