"""Connections: run compiled statements against a DB-API driver.

:func:`connect` picks the dialect from the URL scheme and opens the raw driver
connection through it::

    connection = connect("sqlite:////tmp/app.sqlite3", registry=models)
    users = connection.q(User).where(age__gte=18).find()

Every statement goes through the connection's debug printer, called with the
driver SQL, the arguments as JSON and the error (``None`` on success); the
default printer logs to the ``ormstack.connection`` logger.
"""

import logging
import urllib.parse
from typing import Any, Callable, Optional

from .dialects import Dialect, DialectRegistry, InsertResult, default_registry
from .exec_value import ExecValue
from .model import Model, ModelRegistry
from .transaction import TransactionManager

logger = logging.getLogger(__name__)

DebugPrinter = Callable[[str, str, Optional[Exception]], None]


def log_statement(sql: str, json_args: str, error: Optional[Exception]) -> None:
    """Default debug printer."""
    if error is None:
        logger.debug("%s args=%s", sql, json_args)
    else:
        logger.warning("%s args=%s failed: %s", sql, json_args, error)


class Connection:
    """A raw driver connection paired with its dialect and model registry."""

    def __init__(self, raw: Any, dialect: Dialect, registry: Optional[ModelRegistry] = None,
                 debug: Optional[DebugPrinter] = None, autocommit: bool = True):
        self.raw = raw
        self.dialect = dialect
        self.registry = registry if registry is not None else ModelRegistry()
        self.debug = debug or log_statement
        self.autocommit = autocommit
        self._transactions = TransactionManager(self)

    # execution

    def run(self, exec_value: ExecValue):
        """Execute one statement and return the driver cursor (the caller closes it).

        Outside a transaction, a failed statement is rolled back so the
        connection stays usable (PostgreSQL refuses every later statement of
        an aborted transaction).
        """
        sql, args = self.dialect.to_driver_sql(exec_value)
        cursor = self.raw.cursor()
        try:
            cursor.execute(sql, args)
        except Exception as error:
            self.debug(sql, exec_value.json_args, error)
            cursor.close()
            if self.autocommit and not self._transactions.level:
                self.raw.rollback()
            raise
        self.debug(sql, exec_value.json_args, None)
        if self.autocommit and not self._transactions.level:
            self.raw.commit()
        return cursor

    def execute(self, exec_value: ExecValue) -> int:
        """Execute a statement that returns no rows; return the affected row count."""
        cursor = self.run(exec_value)
        rowcount = cursor.rowcount
        cursor.close()
        return rowcount

    def fetch(self, exec_value: ExecValue) -> list[dict[str, Any]]:
        """Execute a query and return its rows as dicts keyed by column name."""
        cursor = self.run(exec_value)
        try:
            columns = [description[0] for description in cursor.description or ()]
            return [dict(zip(columns, row)) for row in cursor.fetchall()]
        finally:
            cursor.close()

    def scalar(self, exec_value: ExecValue) -> Any:
        """Execute a query and return the first column of its first row (or None)."""
        cursor = self.run(exec_value)
        try:
            row = cursor.fetchone()
        finally:
            cursor.close()
        return row[0] if row else None

    def insert(self, exec_value: ExecValue) -> InsertResult:
        """Execute an insert built by the dialect and read back the generated key."""
        cursor = self.run(exec_value)
        try:
            return self.dialect.insert_result(cursor)
        finally:
            cursor.close()

    # transactions

    def transaction(self):
        """Context manager wrapping statements in a transaction (SAVEPOINT when nested)."""
        return self._transactions.transaction()

    def commit(self) -> None:
        self.raw.commit()

    def rollback(self) -> None:
        self.raw.rollback()

    def close(self) -> None:
        self.raw.close()

    # queries

    def q(self, model: Any) -> "Query":
        """Return a Query on ``model`` (a Model, a registered record type or a model name)."""
        from .query import Query
        if not isinstance(model, Model):
            model = self.registry.get(model)
        return Query(model=model, connection=self)


def connect(database_url: str | Callable[[], str], registry: Optional[ModelRegistry] = None,
            dialects: Optional[DialectRegistry] = None, debug: Optional[DebugPrinter] = None,
            autocommit: bool = True, **dialect_options: Any) -> Connection:
    """Open a connection; the URL scheme selects the dialect.

    Args:
        database_url: URL such as ``sqlite:///path``, ``mysql://user:pw@host/db`` or
            ``postgresql://...``, or a callable returning one.
        registry: Model registry used to resolve record types and relation targets.
        dialects: Dialect registry; defaults to the built-in dialects.
        debug: Statement printer ``(sql, json_args, error)``.
        autocommit: Commit after each statement run outside a transaction.
        **dialect_options: Passed to the dialect (e.g. ``paramstyle="numeric"``).
    """
    if callable(database_url):
        database_url = database_url()
    if not isinstance(database_url, str):
        raise ValueError("`database_url` should be either a `str`, or a method returning a `str`")
    scheme = urllib.parse.urlparse(database_url).scheme
    dialect = (dialects or default_registry()).for_scheme(scheme, **dialect_options)
    return Connection(dialect.connect(database_url), dialect, registry=registry,
                      debug=debug, autocommit=autocommit)


__all__ = ["Connection", "DebugPrinter", "connect", "log_statement"]
