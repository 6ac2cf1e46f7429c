"""Relation descriptors used by the preload resolver."""

import enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, model_validator


class RelationKind(enum.Enum):
    ONE_TO_ONE = "one_to_one"
    BELONGS_TO = "belongs_to"
    ONE_TO_MANY = "one_to_many"
    MANY_TO_MANY = "many_to_many"


class Relation(BaseModel):
    """How records of one model link to records of another.

    ``parent_field`` is read on the parent records and matched against
    ``child_field`` on the target records. For many-to-many relations, the
    ``through`` model holds ``(through_parent_field, through_child_field)``
    pairs linking parent keys to target keys.
    """

    model_config = ConfigDict(frozen=True)

    kind: RelationKind
    container: str
    """Field of the parent record that receives the loaded record(s)."""
    target: str
    """Name of the related model."""
    parent_field: str = "id"
    child_field: str = "id"
    through: Optional[str] = None
    through_parent_field: Optional[str] = None
    through_child_field: Optional[str] = None

    @model_validator(mode="after")
    def _check_through(self):
        is_many_to_many = self.kind is RelationKind.MANY_TO_MANY
        has_through = self.through is not None
        if is_many_to_many != has_through:
            raise ValueError(f"Relation {self.container!r}: `through` is required for many-to-many only")
        if has_through and not (self.through_parent_field and self.through_child_field):
            raise ValueError(f"Relation {self.container!r}: many-to-many needs both through fields")
        return self

    @property
    def is_collection(self) -> bool:
        """True if the container holds a list of records."""
        return self.kind in (RelationKind.ONE_TO_MANY, RelationKind.MANY_TO_MANY)

    @classmethod
    def one_to_one(cls, container: str, target: str, child_field: str, parent_field: str = "id") -> "Relation":
        """The target holds a foreign key (``child_field``) to the parent."""
        return cls(kind=RelationKind.ONE_TO_ONE, container=container, target=target,
                   parent_field=parent_field, child_field=child_field)

    @classmethod
    def belongs_to(cls, container: str, target: str, parent_field: str, child_field: str = "id") -> "Relation":
        """The parent holds a foreign key (``parent_field``) to the target."""
        return cls(kind=RelationKind.BELONGS_TO, container=container, target=target,
                   parent_field=parent_field, child_field=child_field)

    @classmethod
    def one_to_many(cls, container: str, target: str, child_field: str, parent_field: str = "id") -> "Relation":
        """Many target records hold a foreign key (``child_field``) to the parent."""
        return cls(kind=RelationKind.ONE_TO_MANY, container=container, target=target,
                   parent_field=parent_field, child_field=child_field)

    @classmethod
    def many_to_many(cls, container: str, target: str, through: str,
                     through_parent_field: str, through_child_field: str,
                     parent_field: str = "id", child_field: str = "id") -> "Relation":
        """Parent and target are linked through rows of a join model."""
        return cls(kind=RelationKind.MANY_TO_MANY, container=container, target=target,
                   parent_field=parent_field, child_field=child_field, through=through,
                   through_parent_field=through_parent_field,
                   through_child_field=through_child_field)


__all__ = ["Relation", "RelationKind"]
