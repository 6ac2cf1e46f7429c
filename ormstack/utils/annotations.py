"""Map Python type annotations to field type tags."""

import datetime
import decimal
import enum
import inspect
import types
import typing

from pydantic import BaseModel


_TYPE_TAGS: dict[type, str] = {
    bool: "bool",
    int: "int",
    float: "float",
    decimal.Decimal: "decimal",
    str: "str",
    bytes: "bytes",
    datetime.datetime: "datetime",
    datetime.date: "date",
    dict: "json",
    list: "json",
    tuple: "json",
    set: "json",
}


def unwrap_optional(annotation) -> tuple[typing.Any, bool]:
    """Return ``(inner_type, nullable)`` for ``X | None`` / ``Optional[X]``; other unions are left as is."""
    origin = typing.get_origin(annotation)
    if origin in (typing.Union, types.UnionType):
        arguments = [a for a in typing.get_args(annotation) if a is not type(None)]
        nullable = len(arguments) < len(typing.get_args(annotation))
        if len(arguments) == 1:
            return arguments[0], nullable
        return annotation, nullable
    return annotation, False


def type_tag_for(annotation) -> str:
    """Return the type tag (``int``, ``str``, ``json``, ...) stored on a field for ``annotation``.

    Raises:
        TypeError: when the annotation has no SQL counterpart.
    """
    base, _ = unwrap_optional(annotation)
    origin = typing.get_origin(base) or base
    if origin in _TYPE_TAGS:
        return _TYPE_TAGS[origin]
    if inspect.isclass(origin):
        if issubclass(origin, enum.Enum):
            return "str"
        if issubclass(origin, BaseModel):
            return "json"
        # bool is a subclass of int: check exact types first, then subclasses
        for python_type, tag in _TYPE_TAGS.items():
            if issubclass(origin, python_type):
                return tag
    if origin is typing.Any:
        return "json"
    raise TypeError(f"Type `{annotation}` has no known conversion to SQL type")


__all__ = ["type_tag_for", "unwrap_optional"]
