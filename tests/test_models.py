import pytest
from pydantic import ValidationError

from dbschema_sync.models import (
    ColumnDefault,
    ColumnMetadata,
    DatabaseSchemaMetadata,
    DefaultKind,
    Engine,
    ForeignKeyMetadata,
    IdentityGeneration,
    IndexMetadata,
    SchemaMetadata,
    TableMetadata,
)


class TestColumnMetadata:
    def test_defaults(self):
        col = ColumnMetadata(name="id", position=1, type="int")
        assert col.nullable is True
        assert col.default is None
        assert col.on_update is None
        assert col.comment == ""
        assert col.identity_generation == IdentityGeneration.UNSPECIFIED

    def test_required_fields(self):
        with pytest.raises(ValidationError):
            ColumnMetadata(name="id", position=1)  # missing type

    def test_frozen(self):
        col = ColumnMetadata(name="id", position=1, type="int")
        with pytest.raises(ValidationError):
            col.name = "other"

    def test_with_default(self):
        col = ColumnMetadata(
            name="created_at",
            position=2,
            type="timestamp",
            default=ColumnDefault(kind=DefaultKind.EXPRESSION, value="CURRENT_TIMESTAMP"),
        )
        assert col.default.kind is DefaultKind.EXPRESSION
        assert col.default.value == "CURRENT_TIMESTAMP"


class TestEnums:
    def test_engine_values(self):
        assert Engine("MYSQL") is Engine.MYSQL
        assert Engine("POSTGRES") is Engine.POSTGRES

    def test_invalid_raises(self):
        with pytest.raises(ValueError):
            Engine("ORACLE")

    def test_identity_values(self):
        assert IdentityGeneration.BY_DEFAULT.value == "BY_DEFAULT"


class TestIndexMetadata:
    def test_parallel_arrays(self):
        idx = IndexMetadata(name="idx_ab", expressions=["a", "b"], key_length=[-1, 10])
        assert idx.expressions == ["a", "b"]
        assert idx.visible is True

    def test_mismatched_lengths_rejected(self):
        with pytest.raises(ValidationError, match="key lengths"):
            IndexMetadata(name="idx", expressions=["a", "b"], key_length=[-1])


class TestForeignKeyMetadata:
    def test_basic(self):
        fk = ForeignKeyMetadata(
            name="fk_user",
            columns=["user_id"],
            referenced_table="users",
            referenced_columns=["id"],
        )
        assert fk.referenced_schema == ""
        assert fk.referenced_table == "users"

    def test_mismatched_columns_rejected(self):
        with pytest.raises(ValidationError):
            ForeignKeyMetadata(
                name="fk",
                columns=["a", "b"],
                referenced_table="t",
                referenced_columns=["x"],
            )

    def test_empty_columns_rejected(self):
        with pytest.raises(ValidationError):
            ForeignKeyMetadata(name="fk", columns=[], referenced_table="t", referenced_columns=[])


class TestTableMetadata:
    def test_defaults(self):
        t = TableMetadata(name="orders")
        assert t.columns == []
        assert t.indexes == []
        assert t.foreign_keys == []
        assert t.collation is None
        assert t.row_count == 0
        assert t.owner == ""


class TestDatabaseSchemaMetadata:
    def test_round_trip(self):
        col = ColumnMetadata(name="id", position=1, type="int", nullable=False)
        idx = IndexMetadata(name="PRIMARY", expressions=["id"], key_length=[-1], primary=True)
        table = TableMetadata(name="users", columns=[col], indexes=[idx], engine="InnoDB")
        schema = SchemaMetadata(name="", tables=[table])
        database = DatabaseSchemaMetadata(name="shop", character_set="utf8mb4", schemas=[schema])

        data = database.model_dump(mode="json")
        restored = DatabaseSchemaMetadata.model_validate(data)

        assert restored == database
        assert restored.schemas[0].tables[0].columns[0].nullable is False
        assert restored.schemas[0].tables[0].indexes[0].primary is True
