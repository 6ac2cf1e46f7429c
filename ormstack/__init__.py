"""ormstack: a small ORM compiling condition trees to dialect-specific SQL, built on Pydantic."""

from .column import Column, ColumnValue, Order
from .connection import Connection, connect
from .exceptions import (
    BatchError,
    InvalidExpressionTree,
    InvalidOperand,
    OrmstackError,
    PreloadError,
    TransactionError,
    UnknownPlaceholder,
    UnsupportedOperation,
)
from .exec_value import ExecValue
from .expressions import Condition, ExprNode, ExprType, all_of, any_of, compile_search
from .model import Field, ForeignKey, Model, ModelRegistry
from .preload import Preload, PreloadResolver
from .query import Query
from .relation import Relation, RelationKind
from .report import Report, ReportEntry
from .template import render_template
