"""Preloading: fill relation containers of already fetched records.

For every relation to preload, the keys of all parent records are collected
(ordered, without duplicates) and the related records are fetched with a
single ``WHERE <key> IN (...)`` query, then grouped and stitched back into the
parents. Nested preloads run depth-first on the children just fetched.

Example::

    preloads = Preload.from_paths(["pets", "pets.toys", "group"])
    PreloadResolver(connection, registry).resolve(user_model, users, preloads)
"""

from __future__ import annotations

import enum
import logging
from collections import defaultdict
from typing import Any, Iterable, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field as PydanticField

from .exceptions import PreloadError
from .expressions import Condition
from .model import Model, ModelRegistry
from .relation import Relation, RelationKind
from .report import Report, child_index

logger = logging.getLogger(__name__)


class Preload(BaseModel):
    """A relation to preload, an optional extra condition on its records, and nested preloads."""

    model_config = ConfigDict(frozen=True)

    container: str
    condition: Condition = PydanticField(default_factory=Condition)
    children: Tuple["Preload", ...] = ()

    @classmethod
    def from_paths(cls, paths: Iterable[str], conditions: Optional[dict[str, Condition]] = None
                   ) -> tuple[Preload, ...]:
        """Merge dotted paths (``"pets"``, ``"pets.toys"``) into a preload tree.

        Sibling order is the order in which containers first appear.
        ``conditions`` maps a full dotted path to the condition filtering its records.
        """
        conditions = conditions or {}
        tree: dict[str, Any] = {}
        for path in paths:
            node = tree
            for container in path.split("."):
                node = node.setdefault(container, {})

        def build(nodes: dict[str, Any], prefix: str) -> tuple[Preload, ...]:
            return tuple(
                cls(
                    container=container,
                    condition=conditions.get(prefix + container, Condition()),
                    children=build(sub, f"{prefix}{container}."),
                )
                for container, sub in nodes.items()
            )

        return build(tree, "")

    def merge(self, other: Preload) -> Preload:
        """Combine two preloads of the same container (conditions AND-ed, children merged)."""
        children = list(self.children)
        for child in other.children:
            for position, existing in enumerate(children):
                if existing.container == child.container:
                    children[position] = existing.merge(child)
                    break
            else:
                children.append(child)
        return Preload(container=self.container, condition=self.condition & other.condition,
                       children=tuple(children))


class PreloadState(enum.Enum):
    PENDING = "pending"
    QUERYING = "querying"
    LINKING = "linking"
    DONE = "done"
    FAILED = "failed"


class PreloadLevel(BaseModel):
    """Progress of one relation at one level of the preload tree."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    index: str
    model: str
    container: str
    state: PreloadState = PreloadState.PENDING
    error: Optional[Exception] = None


def _unique(values: Iterable[Any]) -> list[Any]:
    return list(dict.fromkeys(value for value in values if value is not None))


class PreloadResolver:
    """Runs the preload tree of one find against a connection."""

    def __init__(self, connection, registry: ModelRegistry, report: Optional[Report] = None,
                 include_deleted: bool = False):
        self.connection = connection
        self.registry = registry
        self.report = report if report is not None else Report()
        self.include_deleted = include_deleted
        self.levels: list[PreloadLevel] = []

    def resolve(self, model: Model, records: list[Any], preloads: Iterable[Preload],
                index: str = "0") -> list[Any]:
        """Preload ``preloads`` into ``records`` (in place) and return them.

        Raises:
            PreloadError: after every level ran, if at least one failed.
        """
        self._resolve_level(model, records, tuple(preloads), index)
        failures = {level.index: level.error for level in self.levels
                    if level.state is PreloadState.FAILED}
        if failures:
            raise PreloadError(failures, records=records, report=self.report)
        return records

    def _resolve_level(self, model: Model, records: list[Any], preloads: tuple[Preload, ...],
                       index: str) -> None:
        for position, preload in enumerate(preloads):
            level = PreloadLevel(index=child_index(index, position), model=model.name,
                                 container=preload.container)
            self.levels.append(level)
            try:
                relation = model.relation(preload.container)
                target = self.registry.get(relation.target)
                children = self._load(model, target, relation, records, preload, level)
            except Exception as error:  # recorded on the level, raised as PreloadError
                level.state = PreloadState.FAILED
                level.error = error
                logger.warning("Preload %s.%s failed at %s: %s", model.name, preload.container,
                               level.index, error)
                continue
            level.state = PreloadState.DONE
            if preload.children and children:
                self._resolve_level(target, children, preload.children, level.index)

    def _find(self, model: Model, condition: Condition, level: PreloadLevel) -> list[Any]:
        if model.soft_delete_field is not None and not self.include_deleted:
            condition = condition & model.column(model.soft_delete_field).is_null()
        dialect = self.connection.dialect
        exec_value = dialect.find_exec(model, model.columns).extend(dialect.condition_exec(condition))
        try:
            rows = self.connection.fetch(exec_value)
        except Exception as error:
            self.report.record(level.index, exec_value, error=error)
            raise
        self.report.record(level.index, exec_value, result=len(rows))
        return [model.hydrate(row) for row in rows]

    def _load(self, model: Model, target: Model, relation: Relation, records: list[Any],
              preload: Preload, level: PreloadLevel) -> list[Any]:
        """Query and link one relation; return the fetched child records."""
        keys = _unique(model.get_value(record, relation.parent_field) for record in records)
        if relation.kind is RelationKind.MANY_TO_MANY:
            return self._load_many_to_many(target, relation, records, keys, preload, level)

        children: list[Any] = []
        if keys:
            level.state = PreloadState.QUERYING
            condition = target.column(relation.child_field).in_(keys) & preload.condition
            children = self._find(target, condition, level)

        level.state = PreloadState.LINKING
        groups: dict[Any, list[Any]] = defaultdict(list)
        for child in children:
            groups[target.get_value(child, relation.child_field)].append(child)
        for record in records:
            group = groups.get(model.get_value(record, relation.parent_field), [])
            if relation.is_collection:
                Model.set_value(record, relation.container, list(group))
            else:
                Model.set_value(record, relation.container, group[0] if group else None)
        return children

    def _load_many_to_many(self, target: Model, relation: Relation, records: list[Any],
                           keys: list[Any], preload: Preload, level: PreloadLevel) -> list[Any]:
        through = self.registry.get(relation.through)
        pairs: list[tuple[Any, Any]] = []
        children: list[Any] = []
        if keys:
            level.state = PreloadState.QUERYING
            links = self._find(through, through.column(relation.through_parent_field).in_(keys), level)
            pairs = [
                (through.get_value(link, relation.through_parent_field),
                 through.get_value(link, relation.through_child_field))
                for link in links
            ]
            child_keys = _unique(child_key for _, child_key in pairs)
            if child_keys:
                condition = target.column(relation.child_field).in_(child_keys) & preload.condition
                children = self._find(target, condition, level)

        level.state = PreloadState.LINKING
        by_key = {target.get_value(child, relation.child_field): child for child in children}
        linked: dict[Any, list[Any]] = defaultdict(list)
        for parent_key, child_key in pairs:
            if child_key in by_key:
                linked[parent_key].append(by_key[child_key])
        for record in records:
            Model.set_value(record, relation.container,
                            list(linked.get(Model.get_value(record, relation.parent_field), [])))
        return children


__all__ = ["Preload", "PreloadLevel", "PreloadResolver", "PreloadState"]
