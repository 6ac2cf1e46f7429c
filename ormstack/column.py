"""Column and ColumnValue: uniform access to a field's SQL column and its runtime value.

A ``Column`` is built once from model metadata and never changes. Comparing a
column with a value (``==``, ``<``, ``.in_(...)``, ...) returns a
:class:`~ormstack.expressions.Condition`, the fluent way to build search lists::

    (User.c.age >= 18) & ((User.c.name == "Ann") | User.c.email.is_null())
"""

from __future__ import annotations

from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict

from .exceptions import InvalidOperand


class Column(BaseModel):
    """A table column, identified by its SQL name."""

    model_config = ConfigDict(frozen=True)

    name: str

    def __str__(self) -> str:
        return self.name

    def __hash__(self) -> int:
        return hash((Column, self.name))

    def value(self, value: Any) -> ColumnValue:
        """Pair this column with a runtime value."""
        return ColumnValue(column=self, value=value)

    def desc(self) -> Order:
        """Order by this column descending."""
        return Order(column=self, descending=True)

    def asc(self) -> Order:
        """Order by this column ascending."""
        return Order(column=self, descending=False)

    # condition building

    def _leaf(self, expr_type, value: Any = None):
        from .expressions import Condition, ExprNode
        return Condition.of(ExprNode(type=expr_type, operand=self.value(value)))

    def __eq__(self, other: Any):
        if isinstance(other, Column):
            return self.name == other.name
        from .expressions import ExprType
        if other is None:
            return self._leaf(ExprType.NULL)
        return self._leaf(ExprType.EQUAL, other)

    def __ne__(self, other: Any):
        if isinstance(other, Column):
            return self.name != other.name
        from .expressions import ExprType
        if other is None:
            return self._leaf(ExprType.NOT_NULL)
        return self._leaf(ExprType.NOT_EQUAL, other)

    def __gt__(self, other: Any):
        from .expressions import ExprType
        return self._leaf(ExprType.GREATER, other)

    def __ge__(self, other: Any):
        from .expressions import ExprType
        return self._leaf(ExprType.GREATER_EQUAL, other)

    def __lt__(self, other: Any):
        from .expressions import ExprType
        return self._leaf(ExprType.LESS, other)

    def __le__(self, other: Any):
        from .expressions import ExprType
        return self._leaf(ExprType.LESS_EQUAL, other)

    def between(self, low: Any, high: Any = None):
        """Inclusive range; accepts ``between(low, high)`` or ``between((low, high))``."""
        from .expressions import ExprType
        return self._leaf(ExprType.BETWEEN, _pair(low, high))

    def not_between(self, low: Any, high: Any = None):
        from .expressions import ExprType
        return self._leaf(ExprType.NOT_BETWEEN, _pair(low, high))

    def in_(self, values: Iterable[Any]):
        """Build ``column IN (...)``. An empty sequence is rejected."""
        from .expressions import ExprType
        return self._leaf(ExprType.IN, _sequence(self.name, values))

    def not_in(self, values: Iterable[Any]):
        from .expressions import ExprType
        return self._leaf(ExprType.NOT_IN, _sequence(self.name, values))

    def like(self, pattern: str):
        from .expressions import ExprType
        return self._leaf(ExprType.LIKE, pattern)

    def not_like(self, pattern: str):
        from .expressions import ExprType
        return self._leaf(ExprType.NOT_LIKE, pattern)

    def is_null(self):
        from .expressions import ExprType
        return self._leaf(ExprType.NULL)

    def is_not_null(self):
        from .expressions import ExprType
        return self._leaf(ExprType.NOT_NULL)


class ColumnValue(BaseModel):
    """A column paired with the value bound for it in a statement."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    column: Column
    value: Any = None

    @property
    def name(self) -> str:
        """SQL column name."""
        return self.column.name


class Order(BaseModel):
    """ORDER BY item: a column and a direction."""

    model_config = ConfigDict(frozen=True)

    column: Column
    descending: bool = False

    @property
    def sql(self) -> str:
        return f"{self.column.name} DESC" if self.descending else self.column.name


def _pair(low: Any, high: Any) -> tuple[Any, Any]:
    if high is None:
        if not isinstance(low, (tuple, list)) or len(low) != 2:
            raise InvalidOperand("BETWEEN needs a (low, high) pair")
        low, high = low
    return (low, high)


def _sequence(name: str, values: Iterable[Any]) -> tuple[Any, ...]:
    if isinstance(values, (str, bytes)):
        raise InvalidOperand(f"IN operand for {name} must be a sequence, not a string")
    values = tuple(values)
    if not values:
        raise InvalidOperand(f"Empty IN list for column {name}")
    return values


__all__ = ["Column", "ColumnValue", "Order"]
