"""Sync against a real server.

Set DBSCHEMA_SYNC_TEST_ENGINE (MYSQL, TIDB or POSTGRES) plus the usual
DBSCHEMA_SYNC_HOST / PORT / USERNAME / PASSWORD / DATABASE variables to run.
The database should be disposable: the tests create and drop their own tables.
"""

import os

import pytest

from dbschema_sync import ConnectionConfig, MetadataSyncer, database_to_yaml
from dbschema_sync.models import Engine

ENGINE = os.environ.get("DBSCHEMA_SYNC_TEST_ENGINE")

pytestmark = pytest.mark.skipif(not ENGINE, reason="DBSCHEMA_SYNC_TEST_ENGINE not set")


@pytest.fixture
def syncer():
    config = ConnectionConfig.from_env(ENGINE)
    with MetadataSyncer(config) as s:
        yield s


@pytest.fixture
def fixture_tables(syncer):
    ex = syncer.executor
    if syncer.config.engine is Engine.POSTGRES:
        ex.execute("CREATE TABLE dbsync_parent (id int PRIMARY KEY, code text)")
        ex.execute(
            "CREATE TABLE dbsync_child (id int PRIMARY KEY, parent_id int "
            "REFERENCES dbsync_parent (id) ON DELETE CASCADE)"
        )
    else:
        ex.execute("CREATE TABLE dbsync_parent (id int PRIMARY KEY, code varchar(32))")
        ex.execute(
            "CREATE TABLE dbsync_child (id int PRIMARY KEY, parent_id int, "
            "FOREIGN KEY fk_parent (parent_id) REFERENCES dbsync_parent (id) ON DELETE CASCADE)"
        )
    ex.execute("CREATE INDEX dbsync_code ON dbsync_parent (code)")
    yield
    ex.execute("DROP TABLE dbsync_child")
    ex.execute("DROP TABLE dbsync_parent")


def _table(database, name):
    for schema in database.schemas:
        for table in schema.tables:
            if table.name == name:
                return table
    raise AssertionError(f"table {name} not synced")


class TestLiveSync:
    def test_instance(self, syncer):
        instance = syncer.sync_instance()
        assert instance.version
        assert syncer.config.database in [db.name for db in instance.databases]

    def test_database(self, syncer, fixture_tables):
        database = syncer.sync_database()

        parent = _table(database, "dbsync_parent")
        assert [c.name for c in parent.columns] == ["id", "code"]
        assert any(i.primary for i in parent.indexes)
        assert any(i.expressions == ["code"] for i in parent.indexes)

        child = _table(database, "dbsync_child")
        fk = child.foreign_keys[0]
        assert fk.columns == ["parent_id"]
        assert fk.referenced_table == "dbsync_parent"
        assert fk.on_delete == "CASCADE"

    def test_idempotent(self, syncer, fixture_tables):
        first = database_to_yaml(syncer.sync_database(), exclude_volatile=True)
        second = database_to_yaml(syncer.sync_database(), exclude_volatile=True)
        assert first == second
