"""Expression nodes: the typed items of a postfix search list."""

import enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict

from ..column import ColumnValue
from ..exceptions import InvalidExpressionTree


class ExprType(enum.Enum):
    """Closed set of node types: comparison leaves, then combinators."""

    EQUAL = "="
    NOT_EQUAL = "<>"
    GREATER = ">"
    GREATER_EQUAL = ">="
    LESS = "<"
    LESS_EQUAL = "<="
    BETWEEN = "BETWEEN"
    NOT_BETWEEN = "NOT BETWEEN"
    IN = "IN"
    NOT_IN = "NOT IN"
    LIKE = "LIKE"
    NOT_LIKE = "NOT LIKE"
    NULL = "IS NULL"
    NOT_NULL = "IS NOT NULL"
    AND = "AND"
    OR = "OR"
    NOT = "NOT"
    IGNORE = "IGNORE"

    @property
    def is_combinator(self) -> bool:
        return self in (ExprType.AND, ExprType.OR, ExprType.NOT)

    @property
    def is_leaf(self) -> bool:
        return not self.is_combinator and self is not ExprType.IGNORE


class ExprNode(BaseModel):
    """One item of a search list.

    Leaves carry the column (and value) they compare; ``AND``/``OR``/``NOT``
    carry nothing and consume fragments already on the evaluation stack.
    ``IGNORE`` is a placeholder that keeps positions aligned and renders nothing.
    """

    model_config = ConfigDict(frozen=True)

    type: ExprType
    operand: Optional[ColumnValue] = None

    def __init__(self, **data):
        super().__init__(**data)
        # checked after validation so the error is not wrapped in a ValidationError
        if self.type.is_leaf and self.operand is None:
            raise InvalidExpressionTree(f"{self.type.name} node needs a column operand")
        if not self.type.is_leaf and self.operand is not None:
            raise InvalidExpressionTree(f"{self.type.name} node cannot carry an operand")

    @classmethod
    def and_(cls) -> "ExprNode":
        return cls(type=ExprType.AND)

    @classmethod
    def or_(cls) -> "ExprNode":
        return cls(type=ExprType.OR)

    @classmethod
    def not_(cls) -> "ExprNode":
        return cls(type=ExprType.NOT)

    @classmethod
    def ignore(cls) -> "ExprNode":
        return cls(type=ExprType.IGNORE)


# Postfix-ordered, immutable sequence of nodes.
SearchList = Tuple[ExprNode, ...]


__all__ = ["ExprType", "ExprNode", "SearchList"]
