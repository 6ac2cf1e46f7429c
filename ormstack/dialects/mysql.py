"""MySQL dialect."""

import urllib.parse
from typing import ClassVar, Literal, Optional, Sequence

from ormstack.column import ColumnValue
from ormstack.exec_value import ExecValue
from ormstack.model import Field, Model

from .base import Dialect


class MysqlDialect(Dialect):
    """Dialect for MySQL (scheme mysql)."""

    SUPPORTED_SCHEMA: ClassVar[tuple[str, ...]] = ("mysql",)

    QUOTE: ClassVar[str] = "`"

    TYPES: ClassVar[dict[str, str]] = {
        "int": "INT",
        "bigint": "BIGINT",
        "float": "DOUBLE",
        "decimal": "DECIMAL(20,6)",
        "bool": "BOOLEAN",
        "str": "VARCHAR(255)",
        "text": "TEXT",
        "bytes": "BLOB",
        "datetime": "DATETIME",
        "date": "DATE",
        "json": "JSON",
    }

    MAX_LIMIT: ClassVar[Optional[str]] = "18446744073709551615"

    paramstyle: Literal["qmark", "format", "numeric"] = "format"

    def connect(self, url: str):
        import pymysql  # pylint: disable=import-outside-toplevel,import-error
        parsed = urllib.parse.urlparse(url)
        return pymysql.connect(
            host=parsed.hostname,
            user=parsed.username,
            password=parsed.password,
            database=(parsed.path or "")[1:] or None,
            port=parsed.port or 3306,
        )

    def auto_increment_definition(self, field: Field) -> str:
        return f"{field.column_name} {self.sql_type(field)} NOT NULL AUTO_INCREMENT"

    def has_table(self, model: Model) -> ExecValue:
        return ExecValue(
            sql="SELECT count(*) FROM information_schema.tables WHERE table_schema = DATABASE() AND table_name = ?",
            args=(model.name,),
        )

    def _insert(self, model: Model, column_values: Sequence[ColumnValue]) -> ExecValue:
        if not column_values:
            return ExecValue(sql=f"INSERT INTO {self.quote(model.name)}() VALUES()")
        return super()._insert(model, column_values)

    def replace_exec(self, model: Model, column_values: Sequence[ColumnValue]) -> ExecValue:
        exec_value = self._insert(model, column_values)
        return exec_value.model_copy(update={"sql": "REPLACE" + exec_value.sql[len("INSERT"):]})

    def drop_foreign_key(self, model: Model, field_name: str) -> ExecValue:
        field = model.field(field_name)
        return ExecValue(sql=(
            f"ALTER TABLE {self.quote(model.name)} DROP FOREIGN KEY {self.foreign_key_name(model, field)}"
        ))
