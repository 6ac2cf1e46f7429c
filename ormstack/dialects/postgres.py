"""PostgreSQL dialect."""

import urllib.parse
from typing import Any, ClassVar, Literal, Sequence

from ormstack.column import ColumnValue
from ormstack.exec_value import ExecValue
from ormstack.model import Field, Model

from .base import Dialect, InsertResult


class PostgresDialect(Dialect):
    """Dialect for PostgreSQL (schemes postgresql, postgres).

    Inserts into a model with an auto-increment key end with ``RETURNING <key>``
    and the key is read back from the returned row. Upserts are spelled
    ``INSERT ... ON CONFLICT(<primary keys>) DO UPDATE``.
    """

    SUPPORTED_SCHEMA: ClassVar[tuple[str, ...]] = ("postgresql", "postgres")

    TYPES: ClassVar[dict[str, str]] = {
        "int": "INTEGER",
        "bigint": "BIGINT",
        "float": "DOUBLE PRECISION",
        "decimal": "NUMERIC",
        "bool": "BOOLEAN",
        "str": "VARCHAR(255)",
        "text": "TEXT",
        "bytes": "BYTEA",
        "datetime": "TIMESTAMP",
        "date": "DATE",
        "json": "JSONB",
    }

    paramstyle: Literal["qmark", "format", "numeric"] = "format"
    """``format`` for psycopg2; ``numeric`` renders ``$1, $2, ...``."""

    def connect(self, url: str):
        import psycopg2  # pylint: disable=import-outside-toplevel,import-error
        parsed = urllib.parse.urlparse(url)
        return psycopg2.connect(
            host=parsed.hostname,
            user=parsed.username,
            password=parsed.password,
            database=(parsed.path or "")[1:] or None,
            port=parsed.port,
        )

    def auto_increment_definition(self, field: Field) -> str:
        serial = "BIGSERIAL" if field.type == "bigint" else "SERIAL"
        return f"{field.column_name} {serial}"

    def has_table(self, model: Model) -> ExecValue:
        return ExecValue(
            sql="SELECT count(*) FROM pg_catalog.pg_tables WHERE tablename=?",
            args=(model.name,),
        )

    def _returning(self, model: Model, exec_value: ExecValue) -> ExecValue:
        key = model.auto_increment_key
        if key is None:
            return exec_value
        return exec_value.append(f" RETURNING {key.column_name}")

    def insert_exec(self, model: Model, column_values: Sequence[ColumnValue]) -> ExecValue:
        return self._returning(model, self._insert(model, column_values))

    def insert_result(self, cursor: Any) -> InsertResult:
        if cursor.description is None:
            return InsertResult(affected=cursor.rowcount)
        # row count is not reported on the RETURNING path
        row = cursor.fetchone()
        return InsertResult(last_insert_id=row[0] if row else None)

    def replace_exec(self, model: Model, column_values: Sequence[ColumnValue]) -> ExecValue:
        exec_value = self._insert(model, column_values)
        keys = ",".join(f.column_name for f in model.primary_keys)
        key_columns = {f.column_name for f in model.primary_keys}
        assignments = ",".join(
            f"{cv.name} = EXCLUDED.{cv.name}" for cv in column_values if cv.name not in key_columns
        )
        if not assignments:
            return self._returning(model, exec_value.append(f" ON CONFLICT({keys}) DO NOTHING"))
        return self._returning(model, exec_value.append(f" ON CONFLICT({keys}) DO UPDATE SET {assignments}"))
