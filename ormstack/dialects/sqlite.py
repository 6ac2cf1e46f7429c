"""SQLite dialect."""

import logging
import urllib.parse
from typing import ClassVar, Optional, Sequence

from ormstack.column import ColumnValue
from ormstack.exceptions import UnsupportedOperation
from ormstack.exec_value import ExecValue
from ormstack.model import Field, Model

from .base import Dialect

logger = logging.getLogger(__name__)


class SqliteDialect(Dialect):
    """Dialect for SQLite (scheme sqlite)."""

    SUPPORTED_SCHEMA: ClassVar[tuple[str, ...]] = ("sqlite",)

    TYPES: ClassVar[dict[str, str]] = {
        "int": "INTEGER",
        "bigint": "INTEGER",
        "float": "REAL",
        "decimal": "NUMERIC",
        "bool": "BOOLEAN",
        "str": "TEXT",
        "text": "TEXT",
        "bytes": "BLOB",
        "datetime": "TIMESTAMP",
        "date": "DATE",
        "json": "JSON",
    }

    MAX_LIMIT: ClassVar[Optional[str]] = "-1"

    # sqlite3 opens its implicit transaction only before DML, not before SAVEPOINT
    BEGIN: ClassVar[Optional[str]] = "BEGIN"

    def connect(self, url: str):
        import sqlite3
        parsed = urllib.parse.urlparse(url)
        path = (parsed.path or "")[1:] or parsed.hostname or ":memory:"
        logger.info("Connecting to SQLite database %s", path)
        conn = sqlite3.connect(path)
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def auto_increment_definition(self, field: Field) -> str:
        # AUTOINCREMENT is only allowed on an inline INTEGER PRIMARY KEY
        return f"{field.column_name} INTEGER PRIMARY KEY AUTOINCREMENT"

    def primary_key_clause(self, model: Model) -> Optional[str]:
        if model.auto_increment_key is not None:
            return None
        return super().primary_key_clause(model)

    def has_table(self, model: Model) -> ExecValue:
        return ExecValue(
            sql="SELECT count(*) FROM sqlite_master WHERE type='table' AND name=?",
            args=(model.name,),
        )

    def replace_exec(self, model: Model, column_values: Sequence[ColumnValue]) -> ExecValue:
        exec_value = self._insert(model, column_values)
        return exec_value.model_copy(update={"sql": "REPLACE" + exec_value.sql[len("INSERT"):]})

    def add_foreign_key(self, model: Model, target: Model, field_name: str) -> ExecValue:
        raise UnsupportedOperation("SQLite cannot add a foreign key to an existing table")

    def drop_foreign_key(self, model: Model, field_name: str) -> ExecValue:
        raise UnsupportedOperation("SQLite cannot drop a foreign key from an existing table")
