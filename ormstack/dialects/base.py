"""Base Dialect type: statement builders shared by every engine.

Statements are built as :class:`~ormstack.exec_value.ExecValue` fragments with
``?`` placeholders; :meth:`Dialect.to_driver_sql` converts them to the driver's
paramstyle at final assembly. Subclasses override what their engine spells
differently (identifier quoting, auto-increment, upsert, id retrieval).
"""

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Iterable, Iterator, Literal, Optional, Sequence

from pydantic import BaseModel

from ..column import Column, ColumnValue, Order
from ..exceptions import UnsupportedOperation
from ..exec_value import ExecValue
from ..expressions import compile_search
from ..model import Field, Model
from ..template import render_template


def iter_placeholders(sql: str) -> Iterator[int]:
    """Yield the offset of every ``?`` placeholder outside quoted literals and identifiers."""
    quote = None
    for offset, char in enumerate(sql):
        if quote is not None:
            if char == quote:
                quote = None
        elif char in "'\"`":
            quote = char
        elif char == "?":
            yield offset


def convert_placeholders(sql: str, paramstyle: str) -> str:
    """Rewrite ``?`` placeholders for ``paramstyle`` (``qmark``, ``format`` or ``numeric``)."""
    if paramstyle == "qmark":
        return sql
    if paramstyle == "format":
        # drivers apply %-formatting to the whole statement
        offsets = set(iter_placeholders(sql))
        return "".join(
            "%s" if i in offsets else ("%%" if char == "%" else char)
            for i, char in enumerate(sql)
        )
    if paramstyle == "numeric":
        parts = []
        previous = 0
        for number, offset in enumerate(iter_placeholders(sql), start=1):
            parts.append(sql[previous:offset])
            parts.append(f"${number}")
            previous = offset + 1
        parts.append(sql[previous:])
        return "".join(parts)
    raise ValueError(f"Unsupported paramstyle: {paramstyle}")


class InsertResult(BaseModel):
    """Outcome of an insert: the generated key and, where the driver reports it, the row count."""

    last_insert_id: Optional[Any] = None
    affected: Optional[int] = None

    @property
    def rows_affected(self) -> int:
        """Number of inserted rows.

        Raises:
            UnsupportedOperation: the dialect's insert path does not report it.
        """
        if self.affected is None:
            raise UnsupportedOperation("Rows affected is not reported for this insert")
        return self.affected


class Dialect(BaseModel, ABC):
    """Base for database dialects; one stateless instance per connection."""

    model_config = {"arbitrary_types_allowed": True}

    SUPPORTED_SCHEMA: ClassVar[tuple[str, ...]] = ()
    """URL schemes this dialect handles (e.g. ('sqlite',), ('postgresql', 'postgres'))."""

    QUOTE: ClassVar[str] = '"'
    """Character quoting table names."""

    TYPES: ClassVar[dict[str, str]] = {}
    """Field type tag -> SQL type."""

    MAX_LIMIT: ClassVar[Optional[str]] = None
    """LIMIT emitted when only an OFFSET is requested, for engines that require one."""

    BEGIN: ClassVar[Optional[str]] = None
    """Statement opening a transaction explicitly, for drivers that only open one before DML."""

    paramstyle: Literal["qmark", "format", "numeric"] = "qmark"
    """Placeholder style expected by the driver."""

    @abstractmethod
    def connect(self, url: str) -> Any:
        """Return a new raw DB-API connection for the given URL."""
        ...  # pylint: disable=unnecessary-ellipsis

    # naming and types

    def quote(self, identifier: str) -> str:
        return f"{self.QUOTE}{identifier}{self.QUOTE}"

    def sql_type(self, field: Field) -> str:
        if field.sql_type:
            return field.sql_type
        try:
            return self.TYPES[field.type]
        except KeyError as error:
            raise TypeError(
                f"Type tag `{field.type}` of field `{field.name}` has no {type(self).__name__} SQL type"
            ) from error

    def auto_increment_definition(self, field: Field) -> str:
        """Column definition of an auto-increment key."""
        raise UnsupportedOperation(f"{type(self).__name__} has no auto-increment columns")

    def column_definition(self, field: Field) -> str:
        if field.auto_increment:
            return self.auto_increment_definition(field)
        sql = f"{field.column_name} {self.sql_type(field)}"
        if not field.nullable:
            sql += " NOT NULL"
        if field.default is not None:
            sql += f" DEFAULT {field.default}"
        return sql

    def primary_key_clause(self, model: Model) -> Optional[str]:
        keys = model.primary_keys
        if not keys:
            return None
        return f"PRIMARY KEY({','.join(f.column_name for f in keys)})"

    def foreign_key_name(self, model: Model, field: Field) -> str:
        return f"fk_{model.name}_{field.column_name}"

    # DDL

    @abstractmethod
    def has_table(self, model: Model) -> ExecValue:
        """Statement returning one row whose first column counts tables named like the model."""

    def create_table(self, model: Model) -> list[ExecValue]:
        """CREATE TABLE, then plain indexes, then unique indexes."""
        definitions = [self.column_definition(field) for field in model.fields]
        primary_key = self.primary_key_clause(model)
        if primary_key:
            definitions.append(primary_key)
        for foreign_key in model.foreign_keys:
            field = model.field(foreign_key.field)
            # named like add_foreign_key so drop_foreign_key can find it
            definitions.append(
                f"CONSTRAINT {self.foreign_key_name(model, field)} FOREIGN KEY ({field.column_name}) REFERENCES "
                f"{self.quote(foreign_key.target)}({foreign_key.target_column})"
            )
        statements = [ExecValue(sql=f"CREATE TABLE {self.quote(model.name)} ({','.join(definitions)})")]
        for keyword, groups in (("INDEX", model.indexes), ("UNIQUE INDEX", model.unique_indexes)):
            for index_name, fields in groups.items():
                columns = ",".join(f.column_name for f in fields)
                statements.append(ExecValue(
                    sql=f"CREATE {keyword} {index_name} ON {self.quote(model.name)}({columns})"
                ))
        return statements

    def drop_table(self, model: Model) -> ExecValue:
        return ExecValue(sql=f"DROP TABLE {self.quote(model.name)}")

    def add_foreign_key(self, model: Model, target: Model, field_name: str) -> ExecValue:
        field = model.field(field_name)
        return ExecValue(sql=(
            f"ALTER TABLE {self.quote(model.name)} ADD CONSTRAINT {self.foreign_key_name(model, field)} "
            f"FOREIGN KEY ({field.column_name}) REFERENCES {self.quote(target.name)}"
            f"({target.primary_key.column_name})"
        ))

    def drop_foreign_key(self, model: Model, field_name: str) -> ExecValue:
        field = model.field(field_name)
        return ExecValue(sql=(
            f"ALTER TABLE {self.quote(model.name)} DROP CONSTRAINT {self.foreign_key_name(model, field)}"
        ))

    # queries

    def count_exec(self, model: Model) -> ExecValue:
        return ExecValue(sql=f"SELECT count(*) FROM {self.quote(model.name)}")

    def find_exec(self, model: Model, columns: Sequence[Column]) -> ExecValue:
        names = ",".join(column.name for column in columns)
        return ExecValue(sql=f"SELECT {names} FROM {self.quote(model.name)}")

    def search_exec(self, search) -> ExecValue:
        """Compile a search list (or Condition) into a WHERE body."""
        return compile_search(search)

    def limit_offset(self, limit: int = 0, offset: int = 0) -> str:
        sql = ""
        if limit:
            sql += f" LIMIT {int(limit)}"
        elif offset and self.MAX_LIMIT:
            sql += f" LIMIT {self.MAX_LIMIT}"
        if offset:
            sql += f" OFFSET {int(offset)}"
        return sql

    def condition_exec(
        self,
        search=(),
        limit: int = 0,
        offset: int = 0,
        order_by: Iterable[Column | Order] = (),
        group_by: Iterable[Column] = (),
    ) -> ExecValue:
        """Trailing clauses, in the order engines accept: WHERE, GROUP BY, ORDER BY, LIMIT, OFFSET."""
        exec_value = ExecValue()
        where = self.search_exec(search)
        if where:
            exec_value = exec_value.append(" WHERE ").extend(where)
        group_by = list(group_by)
        if group_by:
            exec_value = exec_value.append(" GROUP BY " + ",".join(c.name for c in group_by))
        order_by = list(order_by)
        if order_by:
            exec_value = exec_value.append(
                " ORDER BY " + ",".join(o.sql if isinstance(o, Order) else o.name for o in order_by)
            )
        return exec_value.append(self.limit_offset(limit, offset))

    # DML

    def _insert(self, model: Model, column_values: Sequence[ColumnValue]) -> ExecValue:
        if not column_values:
            return ExecValue(sql=f"INSERT INTO {self.quote(model.name)} DEFAULT VALUES")
        columns = ",".join(cv.name for cv in column_values)
        placeholders = ",".join("?" for _ in column_values)
        return ExecValue(
            sql=f"INSERT INTO {self.quote(model.name)}({columns}) VALUES({placeholders})",
            args=tuple(cv.value for cv in column_values),
        )

    def insert_exec(self, model: Model, column_values: Sequence[ColumnValue]) -> ExecValue:
        return self._insert(model, column_values)

    def insert_result(self, cursor: Any) -> InsertResult:
        """Read the generated key and row count from the cursor that ran ``insert_exec``."""
        rowcount = getattr(cursor, "rowcount", -1)
        return InsertResult(
            last_insert_id=getattr(cursor, "lastrowid", None),
            affected=rowcount if rowcount is not None and rowcount >= 0 else None,
        )

    @abstractmethod
    def replace_exec(self, model: Model, column_values: Sequence[ColumnValue]) -> ExecValue:
        """Insert, or overwrite the row with the same primary key."""

    def update_exec(self, model: Model, column_values: Sequence[ColumnValue]) -> ExecValue:
        assignments = ",".join(f"{cv.name}=?" for cv in column_values)
        return ExecValue(
            sql=f"UPDATE {self.quote(model.name)} SET {assignments}",
            args=tuple(cv.value for cv in column_values),
        )

    def delete_exec(self, model: Model) -> ExecValue:
        return ExecValue(sql=f"DELETE FROM {self.quote(model.name)}")

    def soft_delete_exec(self, model: Model, deleted_at: Any) -> ExecValue:
        """Mark rows deleted by setting the model's soft delete field."""
        if model.soft_delete_field is None:
            raise UnsupportedOperation(f"Model {model.name} has no soft delete field")
        return self.update_exec(model, [model.column(model.soft_delete_field).value(deleted_at)])

    def template_exec(self, skeleton: str, fragments: dict[str, ExecValue],
                      model: Optional[Model] = None) -> ExecValue:
        """Substitute ``$ModelName``, ``$Columns``, ``$Values``, ``$Conditions`` and field tokens."""
        return render_template(skeleton, fragments, model=model)

    # final assembly

    def to_driver_sql(self, exec_value: ExecValue) -> tuple[str, tuple[Any, ...]]:
        """Return ``(sql, args)`` ready for ``cursor.execute``."""
        return convert_placeholders(exec_value.sql, self.paramstyle), tuple(exec_value.args)


__all__ = ["Dialect", "InsertResult", "convert_placeholders", "iter_placeholders"]
