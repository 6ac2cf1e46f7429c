"""Compiled SQL fragments: text plus positional arguments."""

import json
from typing import Any, Tuple

from pydantic import BaseModel, ConfigDict, Field as PydanticField


class ExecValue(BaseModel):
    """A piece of SQL with ``?`` placeholders and the values bound to them, in order.

    Values are immutable: ``append`` and ``extend`` return new fragments. Appending
    is associative, so ``a.extend(b).extend(c)`` and ``a.extend(b.extend(c))``
    hold the same text and arguments.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    sql: str = ""
    args: Tuple[Any, ...] = PydanticField(default_factory=tuple)

    def append(self, text: str, *args: Any) -> "ExecValue":
        """Return a new fragment with ``text`` appended and ``args`` bound after ours."""
        return ExecValue(sql=self.sql + text, args=self.args + args)

    def extend(self, other: "ExecValue") -> "ExecValue":
        """Concatenate another fragment (text and arguments)."""
        return self.append(other.sql, *other.args)

    def __add__(self, other: "ExecValue") -> "ExecValue":
        if not isinstance(other, ExecValue):
            return NotImplemented
        return self.extend(other)

    def __bool__(self) -> bool:
        return bool(self.sql)

    @property
    def placeholder_count(self) -> int:
        """Number of ``?`` placeholders outside quoted literals."""
        from .dialects.base import iter_placeholders
        return sum(1 for _ in iter_placeholders(self.sql))

    @property
    def json_args(self) -> str:
        """Arguments serialized as JSON (non-JSON values via ``str``), for debug output."""
        return json.dumps(list(self.args), default=str, ensure_ascii=False)


__all__ = ["ExecValue"]
