"""Search expressions: nodes, the fluent condition builder and the compiler.

A condition is stored as a flattened, postfix-ordered list of :class:`ExprNode`
(a *search list*). Build one by comparing columns (``User.c.age > 3``),
combining with ``&``, ``|`` and ``~``, then compile it with
:func:`compile_search` into an :class:`~ormstack.exec_value.ExecValue`
(``.sql`` with ``?`` placeholders and ``.args`` in the same order).
"""

from .node import ExprNode, ExprType, SearchList
from .builder import Condition, all_of, any_of
from .compiler import compile_search, render_leaf

__all__ = [
    "Condition",
    "ExprNode",
    "ExprType",
    "SearchList",
    "all_of",
    "any_of",
    "compile_search",
    "render_leaf",
]
