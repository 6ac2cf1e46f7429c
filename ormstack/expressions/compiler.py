"""Stack evaluator turning a postfix search list into one SQL fragment.

Leaves push a rendered comparison; ``AND``/``OR`` pop two fragments (the
second-to-top one is the left operand), ``NOT`` pops one. ``OR`` always wraps
its result in parentheses and ``AND`` never adds any, so nested combinations
keep their meaning without precedence tracking::

    a = ?, b = ?, c = ?, OR, AND   ->   "a = ? AND (b = ? OR c = ?)"
"""

from typing import Any, Iterable

from ..column import ColumnValue
from ..exceptions import InvalidExpressionTree, InvalidOperand
from ..exec_value import ExecValue
from .builder import Condition
from .node import ExprType, ExprNode


_COMPARISONS = (
    ExprType.EQUAL,
    ExprType.NOT_EQUAL,
    ExprType.GREATER,
    ExprType.GREATER_EQUAL,
    ExprType.LESS,
    ExprType.LESS_EQUAL,
    ExprType.LIKE,
    ExprType.NOT_LIKE,
)


def _sequence_operand(operand: ColumnValue) -> tuple[Any, ...]:
    value = operand.value
    if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
        raise InvalidOperand(f"IN operand for {operand.name} must be a sequence, got {value!r}")
    values = tuple(value)
    if not values:
        raise InvalidOperand(f"Empty IN list for column {operand.name}")
    return values


def _pair_operand(operand: ColumnValue) -> tuple[Any, Any]:
    value = operand.value
    if not isinstance(value, (tuple, list)) or len(value) != 2:
        raise InvalidOperand(f"BETWEEN operand for {operand.name} must be a (low, high) pair, got {value!r}")
    return value[0], value[1]


def render_leaf(node: ExprNode) -> ExecValue:
    """Render a single comparison node."""
    operand = node.operand
    column = operand.name
    symbol = node.type.value
    if node.type in _COMPARISONS:
        return ExecValue(sql=f"{column} {symbol} ?", args=(operand.value,))
    if node.type in (ExprType.BETWEEN, ExprType.NOT_BETWEEN):
        low, high = _pair_operand(operand)
        return ExecValue(sql=f"{column} {symbol} ? AND ?", args=(low, high))
    if node.type in (ExprType.IN, ExprType.NOT_IN):
        values = _sequence_operand(operand)
        placeholders = ",".join("?" for _ in values)
        return ExecValue(sql=f"{column} {symbol} ({placeholders})", args=values)
    if node.type in (ExprType.NULL, ExprType.NOT_NULL):
        return ExecValue(sql=f"{column} {symbol}")
    raise InvalidExpressionTree(f"{node.type.name} is not a comparison")


def compile_search(search) -> ExecValue:
    """Compile a search list (or a :class:`Condition`) into a WHERE-ready fragment.

    Returns an empty fragment when there is nothing to render.

    Raises:
        InvalidExpressionTree: a combinator finds too few fragments on the stack,
            or more than one fragment remains at the end.
        InvalidOperand: a leaf carries an operand its operator cannot render.
    """
    if isinstance(search, Condition):
        search = search.nodes
    stack: list[ExecValue] = []
    for position, node in enumerate(search):
        if node.type is ExprType.IGNORE:
            continue
        if node.type in (ExprType.AND, ExprType.OR):
            if len(stack) < 2:
                raise InvalidExpressionTree(
                    f"{node.type.name} at position {position} needs 2 operands, found {len(stack)}"
                )
            right = stack.pop()
            left = stack.pop()
            if node.type is ExprType.AND:
                stack.append(left.append(" AND ").extend(right))
            else:
                stack.append(ExecValue(sql="(").extend(left).append(" OR ").extend(right).append(")"))
        elif node.type is ExprType.NOT:
            if not stack:
                raise InvalidExpressionTree(f"NOT at position {position} needs 1 operand, found 0")
            stack.append(ExecValue(sql="NOT(").extend(stack.pop()).append(")"))
        else:
            stack.append(render_leaf(node))
    if not stack:
        return ExecValue()
    if len(stack) != 1:
        raise InvalidExpressionTree(
            f"Search list leaves {len(stack)} fragments on the stack; missing AND/OR combinators"
        )
    return stack[0]
