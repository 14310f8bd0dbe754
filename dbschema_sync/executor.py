from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from contextlib import AbstractContextManager, contextmanager
from typing import TYPE_CHECKING, Any, Protocol

from sqlalchemy import URL, create_engine, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from dbschema_sync.dialect import get_profile
from dbschema_sync.errors import QueryError

if TYPE_CHECKING:
    from dbschema_sync.config import ConnectionConfig

logger = logging.getLogger(__name__)

Row = dict[str, Any]


class QueryExecutor(Protocol):
    def fetch_all(self, sql: str, params: Mapping[str, Any] | None = None) -> list[Row]: ...

    def execute(self, sql: str, params: Mapping[str, Any] | None = None) -> None: ...

    def transaction(self) -> AbstractContextManager[None]: ...


class SQLAlchemyExecutor:
    """QueryExecutor backed by a SQLAlchemy Connection.

    Rows come back as plain dicts keyed by the column labels the server
    reports. Every SQLAlchemy failure surfaces as QueryError. Statements
    run outside transaction() commit on their own.
    """

    def __init__(self, connection: Connection, engine: Engine | None = None) -> None:
        self.connection = connection
        self._engine = engine

    @classmethod
    def connect(cls, config: ConnectionConfig) -> SQLAlchemyExecutor:
        profile = get_profile(config.engine)
        url = URL.create(
            profile.driver_name,
            username=config.username or None,
            password=config.password.get_secret_value() or None,
            host=config.host,
            port=config.port,
            database=config.database,
        )
        engine = create_engine(url, poolclass=NullPool)
        logger.debug("Connecting to %s", url.render_as_string(hide_password=True))
        try:
            connection = engine.connect()
        except SQLAlchemyError as exc:
            engine.dispose()
            raise QueryError(f"failed to connect to {config.host}:{config.port}: {exc}") from exc
        return cls(connection, engine=engine)

    def fetch_all(self, sql: str, params: Mapping[str, Any] | None = None) -> list[Row]:
        return self._run(sql, params)

    def execute(self, sql: str, params: Mapping[str, Any] | None = None) -> None:
        self._run(sql, params)

    def _run(self, sql: str, params: Mapping[str, Any] | None) -> list[Row]:
        # Outside transaction() each statement ends the transaction SQLAlchemy autobegins,
        # so the session never sits idle in transaction between reads.
        owns_transaction = not self.connection.in_transaction()
        try:
            result = self.connection.execute(text(sql), dict(params or {}))
            rows = [dict(row) for row in result.mappings()] if result.returns_rows else []
            if owns_transaction:
                self.connection.commit()
        except SQLAlchemyError as exc:
            if owns_transaction:
                self._rollback_quietly()
            raise QueryError(str(exc)) from exc
        return rows

    def _rollback_quietly(self) -> None:
        try:
            self.connection.rollback()
        except SQLAlchemyError as exc:
            logger.warning("Rollback after failed statement also failed: %s", exc)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Run the block in a transaction this executor opens and ends.

        Work left pending on the connection by someone else is never committed
        here: entering with a transaction already open raises QueryError.
        """
        if self.connection.in_transaction():
            raise QueryError("connection already has a transaction in progress")
        try:
            txn = self.connection.begin()
        except SQLAlchemyError as exc:
            raise QueryError(str(exc)) from exc
        try:
            yield
        except BaseException:
            txn.rollback()
            raise
        try:
            txn.commit()
        except SQLAlchemyError as exc:
            raise QueryError(str(exc)) from exc

    def close(self) -> None:
        self.connection.close()
        if self._engine is not None:
            self._engine.dispose()
