"""Static table metadata and the registry that builds it once per record type.

A :class:`Model` is declared from an explicit list of :class:`Field`
descriptors (name, column, type tag, constraints). Nothing in the compiler,
dialects or preload resolver inspects record classes at runtime: they only
read the model.

Records themselves can be pydantic models, plain objects with attributes, or
dicts; :meth:`Model.get_value` / :meth:`Model.set_value` hide the difference.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Iterable, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field as PydanticField, model_validator

from .column import Column, ColumnValue
from .relation import Relation
from .utils.annotations import type_tag_for, unwrap_optional

logger = logging.getLogger(__name__)


class Field(BaseModel):
    """Descriptor for one stored field of a model."""

    model_config = ConfigDict(frozen=True)

    name: str
    column_name: Optional[str] = None
    """SQL column name; defaults to ``name``."""
    type: str = "str"
    """Type tag (``int``, ``bigint``, ``float``, ``decimal``, ``bool``, ``str``, ``text``,
    ``bytes``, ``datetime``, ``date``, ``json``), mapped to SQL types by each dialect."""
    sql_type: Optional[str] = None
    """Explicit SQL type, bypassing the dialect's type map."""
    primary_key: bool = False
    auto_increment: bool = False
    nullable: bool = True
    default: Optional[str] = None
    """SQL literal for the DEFAULT clause (rendered verbatim)."""
    index: Optional[str] = None
    """Name of the (plain) index this field belongs to."""
    unique_index: Optional[str] = None
    """Name of the unique index this field belongs to."""

    @model_validator(mode="before")
    @classmethod
    def _defaults(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            if data.get("column_name") is None:
                data["column_name"] = data.get("name")
            if data.get("primary_key"):
                data["nullable"] = False
        return data

    @property
    def column(self) -> Column:
        return Column(name=self.column_name)


class ForeignKey(BaseModel):
    """``field`` of this model references ``target_column`` of model ``target``."""

    model_config = ConfigDict(frozen=True)

    field: str
    target: str
    target_column: str = "id"


class _ColumnAccessor:
    """Attribute access to a model's columns by field name: ``model.c.age``."""

    __slots__ = ("_model",)

    def __init__(self, model: "Model") -> None:
        self._model = model

    def __getattr__(self, name: str) -> Column:
        try:
            return self._model.field(name).column
        except KeyError as error:
            raise AttributeError(name) from error

    def __getitem__(self, name: str) -> Column:
        return self._model.field(name).column


class Model(BaseModel):
    """Read-only description of a table: name, fields, keys, indexes and relations."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    fields: Tuple[Field, ...]
    record_type: Any = None
    """Class used to rehydrate rows (pydantic model or any class accepting keyword
    arguments); ``None`` means rows are returned as dicts keyed by field name."""
    foreign_keys: Tuple[ForeignKey, ...] = PydanticField(default_factory=tuple)
    relations: Tuple[Relation, ...] = PydanticField(default_factory=tuple)
    soft_delete_field: Optional[str] = None

    @model_validator(mode="after")
    def _check(self):
        names = [f.name for f in self.fields]
        if len(set(names)) != len(names):
            raise ValueError(f"Model {self.name}: duplicate field names")
        for foreign_key in self.foreign_keys:
            if foreign_key.field not in names:
                raise ValueError(f"Model {self.name}: foreign key on unknown field {foreign_key.field!r}")
        if self.soft_delete_field is not None and self.soft_delete_field not in names:
            raise ValueError(f"Model {self.name}: unknown soft delete field {self.soft_delete_field!r}")
        containers = [r.container for r in self.relations]
        if len(set(containers)) != len(containers):
            raise ValueError(f"Model {self.name}: duplicate relation containers")
        return self

    def __hash__(self) -> int:
        return hash((Model, self.name))

    # fields and columns

    @property
    def c(self) -> _ColumnAccessor:
        return _ColumnAccessor(self)

    def field(self, name: str) -> Field:
        """Return the field named ``name`` (or whose column is ``name``)."""
        for field in self.fields:
            if field.name == name:
                return field
        for field in self.fields:
            if field.column_name == name:
                return field
        raise KeyError(f"No such field for {self.name}: {name}")

    def field_at(self, position: int) -> Field:
        """Return the field at ``position`` in declaration order."""
        if not 0 <= position < len(self.fields):
            raise KeyError(f"No field at position {position} for {self.name}")
        return self.fields[position]

    def column(self, name: str) -> Column:
        return self.field(name).column

    @property
    def columns(self) -> list[Column]:
        return [f.column for f in self.fields]

    @property
    def primary_keys(self) -> list[Field]:
        return [f for f in self.fields if f.primary_key]

    @property
    def primary_key(self) -> Field:
        """The single primary key field."""
        keys = self.primary_keys
        if len(keys) != 1:
            raise ValueError(f"Model {self.name} has {len(keys)} primary keys, expected exactly one")
        return keys[0]

    @property
    def auto_increment_key(self) -> Optional[Field]:
        """The primary key filled by the database, if the model has exactly one."""
        keys = self.primary_keys
        if len(keys) == 1 and keys[0].auto_increment:
            return keys[0]
        return None

    def _groups(self, attribute: str) -> dict[str, list[Field]]:
        groups: dict[str, list[Field]] = {}
        for field in self.fields:
            key = getattr(field, attribute)
            if key:
                groups.setdefault(key, []).append(field)
        return groups

    @property
    def indexes(self) -> dict[str, list[Field]]:
        """Plain index name -> fields, in declaration order."""
        return self._groups("index")

    @property
    def unique_indexes(self) -> dict[str, list[Field]]:
        """Unique index name -> fields, in declaration order."""
        return self._groups("unique_index")

    def relation(self, container: str) -> Relation:
        for relation in self.relations:
            if relation.container == container:
                return relation
        raise KeyError(f"No relation {container!r} on {self.name}")

    # record access

    @staticmethod
    def get_value(record: Any, name: str) -> Any:
        if isinstance(record, dict):
            return record.get(name)
        return getattr(record, name, None)

    @staticmethod
    def set_value(record: Any, name: str, value: Any) -> None:
        if isinstance(record, dict):
            record[name] = value
        elif isinstance(record, BaseModel):
            # bypass validation: containers receive already-built records
            record.__dict__[name] = value
        else:
            setattr(record, name, value)

    def column_values(self, record: Any, names: Optional[Iterable[str]] = None,
                      skip_auto_increment: bool = True) -> list[ColumnValue]:
        """Column/value pairs for ``record`` in field order.

        The auto-increment key is skipped when its value is ``None`` (or always,
        when ``skip_auto_increment`` is set and the value is falsy).
        """
        selected = set(names) if names is not None else None
        result = []
        for field in self.fields:
            if selected is not None and field.name not in selected:
                continue
            value = self.get_value(record, field.name)
            if field.auto_increment and skip_auto_increment and not value:
                continue
            result.append(field.column.value(value))
        return result

    def primary_values(self, record: Any) -> list[ColumnValue]:
        return [f.column.value(self.get_value(record, f.name)) for f in self.primary_keys]

    def hydrate(self, row: dict[str, Any]) -> Any:
        """Build a record from a row keyed by column name."""
        data = {}
        for column_name, value in row.items():
            try:
                field = self.field(column_name)
            except KeyError:
                continue
            data[field.name] = value
        if self.record_type is None:
            return data
        if isinstance(self.record_type, type) and issubclass(self.record_type, BaseModel):
            return self.record_type.model_validate(data)
        return self.record_type(**data)

    # construction from a record class

    @classmethod
    def from_record_type(
        cls,
        record_type: type[BaseModel],
        name: Optional[str] = None,
        primary_key: str | tuple[str, ...] = "id",
        auto_increment: bool = True,
        field_options: Optional[dict[str, dict[str, Any]]] = None,
        **options: Any,
    ) -> Model:
        """Build a model from a pydantic record class's annotations.

        Relation containers (``options["relations"]``) are not stored fields and
        are skipped. ``field_options`` overrides descriptor attributes per field,
        e.g. ``{"email": {"unique_index": "uniq_email"}}``.
        """
        field_options = field_options or {}
        primary_keys = (primary_key,) if isinstance(primary_key, str) else tuple(primary_key)
        containers = {relation.container for relation in options.get("relations", ())}
        fields = []
        for field_name, info in record_type.model_fields.items():
            if field_name in containers:
                continue
            _, nullable = unwrap_optional(info.annotation)
            descriptor = {
                "name": field_name,
                "type": type_tag_for(info.annotation),
                "nullable": nullable,
                "primary_key": field_name in primary_keys,
                "auto_increment": auto_increment and primary_keys == (field_name,),
            }
            descriptor.update(field_options.get(field_name, {}))
            fields.append(Field(**descriptor))
        return cls(
            name=name or record_type.__name__.lower(),
            fields=tuple(fields),
            record_type=record_type,
            **options,
        )


class ModelRegistry:
    """Builds and caches models, at most once per record type.

    Registration only stores a builder; the model is built on first lookup.
    Concurrent first lookups of the same type are serialized by a per-type lock,
    lookups of different types do not block each other.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._builders: dict[Any, Callable[[], Model]] = {}
        self._names: dict[str, Any] = {}
        self._models: dict[Any, Model] = {}
        self._type_locks: dict[Any, threading.Lock] = {}

    def register(self, record_type: Any, builder: Optional[Callable[[], Model] | Model] = None,
                 name: Optional[str] = None, **options: Any) -> None:
        """Register ``record_type`` (or a model name) with a lazy builder.

        Without ``builder``, the model is built by :meth:`Model.from_record_type`
        with ``options``.
        """
        if isinstance(builder, Model):
            model = builder
            name = name or model.name
            builder = lambda: model
        elif builder is None:
            name = name or options.get("name") or record_type.__name__.lower()
            options.setdefault("name", name)
            builder = lambda: Model.from_record_type(record_type, **options)
        elif name is None:
            name = record_type if isinstance(record_type, str) else record_type.__name__.lower()
        with self._lock:
            self._builders[record_type] = builder
            self._names[name] = record_type
            self._models.pop(record_type, None)

    def add(self, model: Model) -> Model:
        """Register an already built model under its record type (or its name)."""
        key = model.record_type if model.record_type is not None else model.name
        self.register(key, model, name=model.name)
        return model

    def _resolve_key(self, key: Any) -> Any:
        if isinstance(key, Model):
            return key.record_type if key.record_type is not None else key.name
        if isinstance(key, str) and key not in self._builders:
            try:
                return self._names[key]
            except KeyError as error:
                raise KeyError(f"No model registered with name `{key}`") from error
        return key

    def get(self, key: Any) -> Model:
        """Return the model for a record type, a model name, or a model itself."""
        key = self._resolve_key(key)
        model = self._models.get(key)
        if model is not None:
            return model
        with self._lock:
            if key not in self._builders:
                raise KeyError(f"No model registered for `{key}`")
            type_lock = self._type_locks.setdefault(key, threading.Lock())
        with type_lock:
            model = self._models.get(key)
            if model is None:
                model = self._builders[key]()
                logger.debug("Built model %s", model.name)
                self._models[key] = model
        return model

    def __contains__(self, key: Any) -> bool:
        return key in self._builders or key in self._names

    def __iter__(self):
        for key in list(self._builders):
            yield self.get(key)


__all__ = ["Field", "ForeignKey", "Model", "ModelRegistry"]
