"""Static per-engine configuration.

Everything that differs between engine families but is not a query lives here:
system object denylists, default ports, the SQLAlchemy driver name, and the
index dialect table that decides which ``information_schema.STATISTICS``
columns a server provides.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from dbschema_sync.models import Engine
from dbschema_sync.version import ServerVersion

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndexDialect:
    has_expression_column: bool
    has_visibility_column: bool


LEGACY_INDEX_DIALECT = IndexDialect(has_expression_column=False, has_visibility_column=False)


@dataclass(frozen=True)
class IndexDialectRule:
    dialect: IndexDialect
    flavor: str | None = None
    min_release: tuple[int, int, int] = (0, 0, 0)

    def matches(self, version: ServerVersion) -> bool:
        if self.flavor is not None and not version.has_flavor(self.flavor):
            return False
        return version.release >= self.min_release


@dataclass(frozen=True)
class EngineProfile:
    engine: Engine
    driver_name: str
    default_port: int
    system_databases: frozenset[str]
    system_schemas: frozenset[str] = frozenset()
    system_schema_prefixes: tuple[str, ...] = ()
    # Rules are tried in order; the first match wins.
    index_rules: tuple[IndexDialectRule, ...] = ()

    def index_dialect(self, version: ServerVersion) -> IndexDialect:
        for rule in self.index_rules:
            if rule.matches(version):
                logger.debug("Index dialect for %s %s%s: %s", self.engine, *version, rule.dialect)
                return rule.dialect
        return LEGACY_INDEX_DIALECT

    def is_system_database(self, name: str) -> bool:
        return name.lower() in self.system_databases

    def is_system_schema(self, name: str) -> bool:
        return name in self.system_schemas or name.startswith(self.system_schema_prefixes)


_MYSQL_SYSTEM_DATABASES = frozenset({"information_schema", "mysql", "performance_schema", "sys"})

# MariaDB keeps the pre-8.0 STATISTICS shape regardless of its own version
# number. EXPRESSION (functional key parts) arrived in MySQL 8.0.13 and
# IS_VISIBLE (invisible indexes) in 8.0.0.
_MYSQL_INDEX_RULES = (
    IndexDialectRule(LEGACY_INDEX_DIALECT, flavor="MariaDB"),
    IndexDialectRule(IndexDialect(True, True), min_release=(8, 0, 13)),
    IndexDialectRule(IndexDialect(False, True), min_release=(8, 0, 0)),
)

PROFILES: dict[Engine, EngineProfile] = {
    Engine.MYSQL: EngineProfile(
        engine=Engine.MYSQL,
        driver_name="mysql+pymysql",
        default_port=3306,
        system_databases=_MYSQL_SYSTEM_DATABASES,
        index_rules=_MYSQL_INDEX_RULES,
    ),
    Engine.TIDB: EngineProfile(
        engine=Engine.TIDB,
        driver_name="mysql+pymysql",
        default_port=4000,
        system_databases=_MYSQL_SYSTEM_DATABASES | {"metrics_schema"},
        index_rules=(
            IndexDialectRule(IndexDialect(True, True), flavor="TiDB"),
            *_MYSQL_INDEX_RULES,
        ),
    ),
    Engine.POSTGRES: EngineProfile(
        engine=Engine.POSTGRES,
        driver_name="postgresql+psycopg2",
        default_port=5432,
        system_databases=frozenset({"template0", "template1"}),
        system_schemas=frozenset({"pg_catalog", "information_schema", "pg_toast"}),
        system_schema_prefixes=("pg_temp_", "pg_toast_temp_"),
    ),
}


def get_profile(engine: Engine) -> EngineProfile:
    return PROFILES[Engine(engine)]
