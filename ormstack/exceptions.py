"""Exceptions raised by ormstack.

Builder and compiler errors are raised as soon as a malformed condition or
template is detected; nothing reaches the database. Execution errors from the
driver are never wrapped: they are attached to report entries and, for batch
and preload operations, collected into an aggregate error.
"""

from typing import Any


class OrmstackError(Exception):
    """Base class for all ormstack errors."""


class InvalidExpressionTree(OrmstackError, ValueError):
    """The postfix search list cannot be evaluated (stack underflow or leftovers)."""


class InvalidOperand(OrmstackError, ValueError):
    """A condition leaf carries an operand its operator cannot render (e.g. empty IN)."""


class UnknownPlaceholder(OrmstackError, KeyError):
    """A template skeleton references a token that cannot be substituted."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class UnsupportedOperation(OrmstackError, NotImplementedError):
    """The selected dialect cannot perform the requested operation."""


class TransactionError(OrmstackError):
    """Misuse of a transaction (inactive, or used from a nested level)."""


class BatchError(OrmstackError):
    """Some statements of a batch operation failed; the others went through."""

    def __init__(self, failures: dict[str, Exception], report: Any = None):
        self.failures = failures
        self.report = report
        indices = ", ".join(failures)
        super().__init__(f"{len(failures)} statement(s) failed at report index {indices}")


class PreloadError(OrmstackError):
    """Some preload levels failed; successfully loaded levels are kept on ``records``."""

    def __init__(self, failures: dict[str, Exception], records: list[Any] = None, report: Any = None):
        self.failures = failures
        self.records = records if records is not None else []
        self.report = report
        details = "; ".join(f"{index}: {error}" for index, error in failures.items())
        super().__init__(f"Preload failed for {len(failures)} level(s): {details}")


__all__ = [
    "OrmstackError",
    "InvalidExpressionTree",
    "InvalidOperand",
    "UnknownPlaceholder",
    "UnsupportedOperation",
    "TransactionError",
    "BatchError",
    "PreloadError",
]
