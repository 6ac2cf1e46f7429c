"""Fluent condition builder producing postfix search lists."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field as PydanticField

from .node import ExprNode, SearchList


class Condition(BaseModel):
    """A boolean condition held as a postfix search list.

    Combine with ``&`` (AND), ``|`` (OR) and ``~`` (NOT). Combining appends the
    right-hand nodes after the left-hand ones, then the combinator, so the left
    operand is always the second-to-top fragment when the list is evaluated.
    An empty condition is the neutral element of ``&`` and ``|``.
    """

    model_config = ConfigDict(frozen=True)

    nodes: SearchList = PydanticField(default_factory=tuple)

    @classmethod
    def of(cls, *nodes: ExprNode) -> Condition:
        """Wrap raw nodes (already in postfix order)."""
        return cls(nodes=nodes)

    @property
    def search(self) -> SearchList:
        return self.nodes

    def __len__(self) -> int:
        return len(self.nodes)

    def __bool__(self) -> bool:
        return any(node.type.is_leaf for node in self.nodes)

    def _combine(self, other: Condition, node: ExprNode) -> Condition:
        if not isinstance(other, Condition):
            return NotImplemented
        if not self:
            return other
        if not other:
            return self
        return Condition(nodes=self.nodes + other.nodes + (node,))

    def __and__(self, other: Condition) -> Condition:
        return self._combine(other, ExprNode.and_())

    def __or__(self, other: Condition) -> Condition:
        return self._combine(other, ExprNode.or_())

    def __invert__(self) -> Condition:
        if not self:
            return self
        return Condition(nodes=self.nodes + (ExprNode.not_(),))


def _fold(conditions: tuple[Optional[Condition], ...], node: ExprNode) -> Condition:
    """Fold conditions left to right; ``None`` items become IGNORE nodes at their position."""
    nodes: tuple[ExprNode, ...] = ()
    operands = 0
    for condition in conditions:
        if condition is None or not condition:
            nodes += (ExprNode.ignore(),)
            continue
        nodes += condition.nodes
        operands += 1
        if operands > 1:
            nodes += (node,)
    return Condition(nodes=nodes)


def all_of(*conditions: Optional[Condition]) -> Condition:
    """AND together all conditions (``None`` entries are skipped)."""
    return _fold(conditions, ExprNode.and_())


def any_of(*conditions: Optional[Condition]) -> Condition:
    """OR together all conditions (``None`` entries are skipped)."""
    return _fold(conditions, ExprNode.or_())


__all__ = ["Condition", "all_of", "any_of"]
