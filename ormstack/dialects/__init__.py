"""Database dialects: one class per engine (SQLite, MySQL, PostgreSQL).

Dialects are looked up by URL scheme through a :class:`DialectRegistry`
value; :func:`default_registry` returns a new registry holding the built-in
dialects, so there is no process-wide registry to mutate.
"""

from typing import Any, Iterable, Optional

from .base import Dialect, InsertResult, convert_placeholders, iter_placeholders
from .sqlite import SqliteDialect
from .mysql import MysqlDialect
from .postgres import PostgresDialect

DEFAULT_DIALECTS: tuple[type[Dialect], ...] = (
    SqliteDialect,
    MysqlDialect,
    PostgresDialect,
)


class DialectRegistry:
    """Maps URL schemes to dialect classes."""

    def __init__(self, dialects: Iterable[type[Dialect]] = ()) -> None:
        self._dialects: list[type[Dialect]] = []
        for dialect_cls in dialects:
            self.register(dialect_cls)

    def register(self, dialect_cls: type[Dialect]) -> type[Dialect]:
        """Add a dialect class; later registrations win for a shared scheme."""
        self._dialects.insert(0, dialect_cls)
        return dialect_cls

    def for_scheme(self, scheme: Optional[str], **options: Any) -> Dialect:
        """Return a Dialect instance for the given URL scheme (e.g. 'sqlite', 'postgresql+psycopg2')."""
        normalized = (scheme or "").split("+")[0].lower()
        for dialect_cls in self._dialects:
            if normalized in dialect_cls.SUPPORTED_SCHEMA:
                return dialect_cls(**options)
        raise ValueError(f"Unsupported database scheme: {scheme}")

    @property
    def schemes(self) -> list[str]:
        return [scheme for cls in self._dialects for scheme in cls.SUPPORTED_SCHEMA]


def default_registry() -> DialectRegistry:
    """Return a new registry with the built-in dialects."""
    return DialectRegistry(DEFAULT_DIALECTS)


def get_dialect_for_scheme(scheme: Optional[str], registry: Optional[DialectRegistry] = None,
                           **options: Any) -> Dialect:
    """Return a Dialect instance for the given URL scheme."""
    return (registry or default_registry()).for_scheme(scheme, **options)


__all__ = [
    "Dialect",
    "DialectRegistry",
    "InsertResult",
    "SqliteDialect",
    "MysqlDialect",
    "PostgresDialect",
    "convert_placeholders",
    "default_registry",
    "get_dialect_for_scheme",
    "iter_placeholders",
]
