"""Fluent query API bound to a connection and a model.

A Query is immutable: every builder method returns a modified copy, so a
partially built query can be reused::

    adults = connection.q(User).where(age__gte=18).order_by("-age")
    first_ten = adults.limit(10).preload("pets", "pets.toys").find()
    adults.update({"status": "adult"})

Reads return records (or dicts when the model has no record type). Batch
writes return a :class:`~ormstack.report.Report` with one entry per record,
indexed ``"0"``, ``"1"``, ...; failing records do not stop the others, and a
:class:`~ormstack.exceptions.BatchError` is raised at the end when any failed.
"""

from __future__ import annotations

import datetime
import logging
from typing import Any, Callable, Iterable, Optional

from pydantic import BaseModel, Field

from .column import Column, Order
from .exceptions import BatchError, UnsupportedOperation
from .exec_value import ExecValue
from .expressions import Condition, all_of
from .model import Model
from .preload import Preload, PreloadResolver
from .report import Report, child_index

logger = logging.getLogger(__name__)

# Django-style lookup -> Column method for Query.where(**kwargs).
# See: https://docs.djangoproject.com/en/stable/ref/models/querysets/#field-lookups
_WHERE_LOOKUP_MAP: dict[str, str] = {
    "exact": "__eq__",
    "ne": "__ne__",
    "lt": "__lt__",
    "lte": "__le__",
    "gt": "__gt__",
    "gte": "__ge__",
    "in": "in_",
    "not_in": "not_in",
    "range": "between",
    "between": "between",
    "not_between": "not_between",
    "like": "like",
    "not_like": "not_like",
}

# lookup -> LIKE pattern for the value
_LIKE_LOOKUP_MAP: dict[str, Callable[[str], str]] = {
    "contains": lambda value: f"%{value}%",
    "startswith": lambda value: f"{value}%",
    "endswith": lambda value: f"%{value}",
}


class Query(BaseModel):
    """Fluent query on one model: conditions, ordering, paging, preloads, and execution."""

    model_config = {"arbitrary_types_allowed": True}

    model: Model
    """The model this query targets."""
    connection: Any = Field(exclude=True)
    """Connection running the statements (see ormstack.connection.Connection)."""
    condition: Condition = Field(default_factory=Condition)
    """WHERE condition, as a postfix search list."""
    selected: tuple[str, ...] = ()
    """Field names to select; empty means every field."""
    order_by_items: tuple[Order, ...] = ()
    group_by_columns: tuple[Column, ...] = ()
    offset_value: int = 0
    """OFFSET (stored to avoid shadowing the offset() method); 0 means none."""
    limit_value: int = 0
    """LIMIT (stored to avoid shadowing the limit() method); 0 means none."""
    preloads: tuple[Preload, ...] = ()
    with_deleted: bool = False
    """If True, include soft-deleted rows (only valid for models with a soft delete field)."""

    @property
    def _dialect(self):
        return self.connection.dialect

    def clone_query_with(self, **changes) -> Query:
        """Return a new Query with the same state except for the given overrides."""
        return self.model_copy(update=changes)

    # --- building ---

    def _column(self, name: str | Column) -> Column:
        if isinstance(name, Column):
            return name
        return self.model.column(name)

    def _where_kwargs_to_conditions(self, kwargs: dict[str, Any]) -> list[Condition]:
        """Turn ``field__lookup=value`` pairs into conditions."""
        result = []
        for key, value in kwargs.items():
            field_name, _, lookup = key.partition("__")
            lookup = lookup or "exact"
            if not field_name:
                raise ValueError(f"where kwargs key {key!r} must include a field name (e.g. name__like)")
            column = self._column(field_name)
            if lookup == "isnull":
                result.append(column.is_null() if value else column.is_not_null())
            elif lookup in _LIKE_LOOKUP_MAP:
                result.append(column.like(_LIKE_LOOKUP_MAP[lookup](value)))
            elif lookup in _WHERE_LOOKUP_MAP:
                result.append(getattr(column, _WHERE_LOOKUP_MAP[lookup])(value))
            else:
                raise ValueError(f"Unknown lookup: {lookup!r}")
        return result

    def where(self, *conditions: Optional[Condition], **kwargs: Any) -> Query:
        """AND conditions and/or Django-style kwargs into the WHERE clause.

        Examples:
            where(User.c.id == 12)
            where(name__like="A%", age__lt=42)
            where(deleted_at__isnull=True)
        """
        added = all_of(*conditions, *self._where_kwargs_to_conditions(kwargs))
        return self.clone_query_with(condition=self.condition & added)

    def or_where(self, *conditions: Optional[Condition], **kwargs: Any) -> Query:
        """OR the current WHERE clause with the given conditions (AND-ed together)."""
        added = all_of(*conditions, *self._where_kwargs_to_conditions(kwargs))
        return self.clone_query_with(condition=self.condition | added)

    def select(self, *fields: str) -> Query:
        """Restrict selected columns to the given fields (by name)."""
        for name in fields:
            self.model.field(name)
        return self.clone_query_with(selected=self.selected + fields)

    def order_by(self, *orders: str | Column | Order) -> Query:
        """Add ORDER BY items: field names (``"-age"`` for descending), columns or orders."""
        items = list(self.order_by_items)
        for order in orders:
            if isinstance(order, Order):
                items.append(order)
            elif isinstance(order, Column):
                items.append(order.asc())
            elif isinstance(order, str):
                descending = order.startswith("-")
                column = self._column(order.lstrip("-"))
                items.append(column.desc() if descending else column.asc())
            else:
                raise TypeError(f"order_by requires a field name, Column or Order; got {type(order)}")
        return self.clone_query_with(order_by_items=tuple(items))

    def group_by(self, *columns: str | Column) -> Query:
        return self.clone_query_with(
            group_by_columns=self.group_by_columns + tuple(self._column(c) for c in columns)
        )

    def limit(self, limit: int) -> Query:
        """Set LIMIT to the given integer."""
        return self.clone_query_with(limit_value=limit)

    def offset(self, offset: int) -> Query:
        """Set OFFSET to the given integer."""
        return self.clone_query_with(offset_value=offset)

    def preload(self, *paths: str, where: Optional[Condition] = None) -> Query:
        """Preload relations by dotted path (e.g. ``"pets"``, ``"pets.toys"``).

        ``where`` filters the records of the last relation of each path.
        """
        for path in paths:
            self.model.relation(path.split(".")[0])
        conditions = {path: where for path in paths} if where is not None else None
        preloads = list(self.preloads)
        for preload in Preload.from_paths(paths, conditions):
            for position, existing in enumerate(preloads):
                if existing.container == preload.container:
                    preloads[position] = existing.merge(preload)
                    break
            else:
                preloads.append(preload)
        return self.clone_query_with(preloads=tuple(preloads))

    def include_deleted(self) -> Query:
        """Include soft-deleted rows in results.

        Raises:
            UnsupportedOperation: If the model has no soft delete field.
        """
        if self.model.soft_delete_field is None:
            raise UnsupportedOperation("include_deleted only applies to models with soft delete")
        return self.clone_query_with(with_deleted=True)

    # --- SQL-generating methods ---

    @property
    def search(self) -> Condition:
        """WHERE condition including the soft delete filter."""
        if self.model.soft_delete_field is None or self.with_deleted:
            return self.condition
        return self.condition & self.model.column(self.model.soft_delete_field).is_null()

    @property
    def columns(self) -> list[Column]:
        if not self.selected:
            return self.model.columns
        return [self.model.column(name) for name in self.selected]

    def condition_exec(self) -> ExecValue:
        return self._dialect.condition_exec(
            self.search,
            limit=self.limit_value,
            offset=self.offset_value,
            order_by=self.order_by_items,
            group_by=self.group_by_columns,
        )

    def find_exec(self) -> ExecValue:
        return self._dialect.find_exec(self.model, self.columns).extend(self.condition_exec())

    def _where_exec(self) -> ExecValue:
        # UPDATE/DELETE/COUNT only take the WHERE clause
        return self._dialect.condition_exec(self.search)

    # --- reads ---

    def find(self, report: Optional[Report] = None) -> list[Any]:
        """Run the query, preload relations, and return the records.

        Raises:
            PreloadError: If some preload level failed; ``.records`` holds the
                records with every level that did succeed.
        """
        report = report if report is not None else Report()
        exec_value = self.find_exec()
        try:
            rows = self.connection.fetch(exec_value)
        except Exception as error:
            report.record("0", exec_value, error=error)
            raise
        report.record("0", exec_value, result=len(rows))
        records = [self.model.hydrate(row) for row in rows]
        if self.preloads and records:
            resolver = PreloadResolver(self.connection, self.connection.registry, report=report,
                                       include_deleted=self.with_deleted)
            resolver.resolve(self.model, records, self.preloads, index="0")
        return records

    def __iter__(self):
        return iter(self.find())

    def first(self) -> Optional[Any]:
        """Return the first matching record, or None if no results."""
        records = self.limit(1).find()
        return records[0] if records else None

    def get_one(self, *conditions: Condition, **kwargs: Any) -> Any:
        """Return the single matching record.

        Raises:
            ValueError: If there are zero or multiple results.
        """
        records = self.where(*conditions, **kwargs).limit(2).find()
        if len(records) == 0:
            raise ValueError("Query returned no results")
        if len(records) > 1:
            raise ValueError("Query returned more than one result")
        return records[0]

    def count(self) -> int:
        exec_value = self._dialect.count_exec(self.model).extend(self._where_exec())
        return int(self.connection.scalar(exec_value) or 0)

    # --- batch writes ---

    def _batch(self, records: Iterable[Any], build: Callable[[Any], ExecValue],
               run: Callable[[Any, ExecValue], Any], report: Optional[Report]) -> Report:
        report = report if report is not None else Report()
        for position, record in enumerate(records):
            index = child_index(None, position)
            try:
                exec_value = build(record)
            except Exception as error:
                report.record(index, ExecValue(), error=error)
                continue
            try:
                result = run(record, exec_value)
            except Exception as error:  # driver error, kept on the report
                report.record(index, exec_value, error=error)
                continue
            report.record(index, exec_value, result=result)
        failures = report.failures
        if failures:
            raise BatchError(failures, report)
        return report

    def _fill_generated_key(self, record: Any, exec_value: ExecValue):
        result = self.connection.insert(exec_value)
        key = self.model.auto_increment_key
        if key is not None and not self.model.get_value(record, key.name) and result.last_insert_id is not None:
            Model.set_value(record, key.name, result.last_insert_id)
        return result

    def insert(self, *records: Any, report: Optional[Report] = None) -> Report:
        """Insert records; generated primary keys are written back into them."""
        return self._batch(
            records,
            lambda record: self._dialect.insert_exec(self.model, self.model.column_values(record)),
            self._fill_generated_key,
            report,
        )

    def replace(self, *records: Any, report: Optional[Report] = None) -> Report:
        """Insert records, or overwrite the rows sharing their primary key."""
        return self._batch(
            records,
            lambda record: self._dialect.replace_exec(self.model, self.model.column_values(record)),
            self._fill_generated_key,
            report,
        )

    def update_records(self, *records: Any, fields: Optional[Iterable[str]] = None,
                       report: Optional[Report] = None) -> Report:
        """Write records back to their rows, matched by primary key."""
        keys = {f.name for f in self.model.primary_keys}
        if not keys:
            raise UnsupportedOperation(f"Model {self.model.name} has no primary key")
        names = [f.name for f in self.model.fields if f.name not in keys]
        if fields is not None:
            names = [name for name in names if name in set(fields)]

        def build(record: Any) -> ExecValue:
            values = self.model.column_values(record, names, skip_auto_increment=False)
            where = all_of(*(cv.column == cv.value for cv in self.model.primary_values(record)))
            return self._dialect.update_exec(self.model, values).extend(
                self._dialect.condition_exec(where)
            )

        return self._batch(records, build, lambda record, exec_value: self.connection.execute(exec_value),
                           report)

    # --- set-based writes ---

    def update(self, values: Optional[dict[str, Any]] = None, **kwargs: Any) -> int:
        """Update every row matched by this query; return the affected row count."""
        values = {**(values or {}), **kwargs}
        if not values:
            return 0
        column_values = [self._column(name).value(value) for name, value in values.items()]
        exec_value = self._dialect.update_exec(self.model, column_values).extend(self._where_exec())
        return self.connection.execute(exec_value)

    def delete(self) -> int:
        """Delete every row matched by this query (soft delete when the model has a soft delete field)."""
        if self.model.soft_delete_field is not None and not self.with_deleted:
            exec_value = self._dialect.soft_delete_exec(self.model, datetime.datetime.now())
        else:
            exec_value = self._dialect.delete_exec(self.model)
        return self.connection.execute(exec_value.extend(self._where_exec()))

    # --- schema ---

    def has_table(self) -> bool:
        return bool(self.connection.scalar(self._dialect.has_table(self.model)))

    def create_table(self, if_not_exists: bool = False) -> None:
        """Create the table and its indexes."""
        if if_not_exists and self.has_table():
            return
        logger.info("Creating table %s", self.model.name)
        for exec_value in self._dialect.create_table(self.model):
            self.connection.execute(exec_value)

    def drop_table(self, if_exists: bool = False) -> None:
        if if_exists and not self.has_table():
            return
        logger.info("Dropping table %s", self.model.name)
        self.connection.execute(self._dialect.drop_table(self.model))

    def add_foreign_key(self, field_name: str) -> None:
        """Add the declared foreign key constraint of ``field_name`` to the existing table."""
        for foreign_key in self.model.foreign_keys:
            if foreign_key.field == field_name:
                target = self.connection.registry.get(foreign_key.target)
                break
        else:
            raise KeyError(f"No foreign key declared on {self.model.name}.{field_name}")
        logger.info("Adding foreign key on %s.%s", self.model.name, field_name)
        self.connection.execute(self._dialect.add_foreign_key(self.model, target, field_name))

    def drop_foreign_key(self, field_name: str) -> None:
        logger.info("Dropping foreign key on %s.%s", self.model.name, field_name)
        self.connection.execute(self._dialect.drop_foreign_key(self.model, field_name))

    # --- templates ---

    def template_exec(self, skeleton: str, values: Optional[dict[str, Any]] = None) -> ExecValue:
        """Render a SQL skeleton with this query's fragments.

        ``$ModelName`` is the quoted table, ``$Columns`` the selected columns,
        ``$Values`` a parenthesized placeholder list bound to ``values`` (field
        name -> value), ``$Conditions`` the WHERE and trailing clauses.
        """
        fragments = {
            "ModelName": ExecValue(sql=self._dialect.quote(self.model.name)),
            "Columns": ExecValue(sql=",".join(column.name for column in self.columns)),
            "Conditions": self.condition_exec(),
        }
        if values is not None:
            fragments["Values"] = ExecValue(
                sql="(" + ",".join("?" for _ in values) + ")",
                args=tuple(values.values()),
            )
        return self._dialect.template_exec(skeleton, fragments, model=self.model)

    def template(self, skeleton: str, values: Optional[dict[str, Any]] = None) -> list[dict[str, Any]] | int:
        """Run a rendered skeleton: rows (as dicts) for queries, the affected row count otherwise."""
        cursor = self.connection.run(self.template_exec(skeleton, values))
        try:
            if cursor.description is None:
                return cursor.rowcount
            columns = [description[0] for description in cursor.description]
            return [dict(zip(columns, row)) for row in cursor.fetchall()]
        finally:
            cursor.close()


__all__ = ["Query"]
