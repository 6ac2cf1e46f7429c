"""Shared test helpers."""

import datetime
from typing import Any, Callable, Optional

from pydantic import BaseModel

from ormstack.connection import Connection
from ormstack.dialects import SqliteDialect
from ormstack.model import Field, ForeignKey, Model, ModelRegistry
from ormstack.relation import Relation


class FakeCursor:
    """DB-API cursor returning scripted rows."""

    def __init__(self, rows=None, columns=None, rowcount=-1, lastrowid=None):
        self._rows = list(rows or [])
        self.description = [(name,) for name in columns] if columns is not None else None
        self.rowcount = rowcount
        self.lastrowid = lastrowid
        self.executed = []

    def execute(self, sql, args=()):
        self.executed.append((sql, tuple(args)))

    def fetchall(self):
        return list(self._rows)

    def fetchone(self):
        return self._rows[0] if self._rows else None


class FakeRawConnection:
    """DB-API connection recording statements; ``responder(sql, args)`` scripts each cursor.

    The responder returns a FakeCursor (or raises, to simulate a driver error).
    Every cursor handed out is kept on ``cursors`` so tests can check it was closed.
    """

    def __init__(self, responder: Optional[Callable[[str, tuple], FakeCursor]] = None):
        self.responder = responder or (lambda sql, args: FakeCursor())
        self.statements: list[tuple[str, tuple]] = []
        self.cursors = []
        self.commits = 0
        self.rollbacks = 0

    def cursor(self):
        raw = self

        class _Cursor:
            _delegate = FakeCursor()
            closed = False

            def execute(self, sql, args=()):
                raw.statements.append((sql, tuple(args)))
                self._delegate = raw.responder(sql, tuple(args))

            def close(self):
                self.closed = True

            def __getattr__(self, name):
                return getattr(self._delegate, name)

        cursor = _Cursor()
        self.cursors.append(cursor)
        return cursor

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1

    def close(self):
        pass


def fake_connection(responder=None, registry=None, dialect=None, debug=None) -> Connection:
    """Connection over a FakeRawConnection (SQLite dialect unless given)."""
    return Connection(FakeRawConnection(responder), dialect or SqliteDialect(), registry=registry, debug=debug)


def rows_for(table_rows: dict[str, list[dict[str, Any]]]):
    """Responder answering ``SELECT ... FROM "<table>" WHERE <col> IN (...)`` from in-memory rows.

    Only the IN filter is honored, which is what preload queries send.
    """
    def responder(sql, args):
        for table, rows in table_rows.items():
            if f'FROM "{table}"' in sql:
                column = sql.split(" WHERE ")[1].split(" IN ")[0]
                selected = [row for row in rows if row[column] in args]
                columns = list(rows[0]) if rows else []
                return FakeCursor(rows=[tuple(row[c] for c in columns) for row in selected], columns=columns)
        raise AssertionError(f"unexpected statement {sql}")
    return responder


def item_model(with_foreign_key: bool = True):
    """Explicitly declared model exercising every column option."""
    return Model(
        name="item",
        fields=(
            Field(name="id", type="int", primary_key=True, auto_increment=True),
            Field(name="name", nullable=False, index="idx_item_name"),
            Field(name="code", unique_index="uniq_item_code"),
            Field(name="price", type="float", default="0"),
            Field(name="owner_id", type="int"),
        ),
        foreign_keys=(ForeignKey(field="owner_id", target="owner"),) if with_foreign_key else (),
    )


def owner_model():
    return Model(name="owner", fields=(Field(name="id", type="int", primary_key=True, auto_increment=True),))


class Toy(BaseModel):
    id: Optional[int] = None
    name: str
    pet_id: Optional[int] = None


class Pet(BaseModel):
    id: Optional[int] = None
    name: str
    owner_id: Optional[int] = None
    toys: list[Toy] = []


class Team(BaseModel):
    id: Optional[int] = None
    name: str


class Tag(BaseModel):
    id: Optional[int] = None
    label: str


class UserTag(BaseModel):
    user_id: int
    tag_id: int


class Profile(BaseModel):
    id: Optional[int] = None
    user_id: Optional[int] = None
    bio: str = ""


class User(BaseModel):
    id: Optional[int] = None
    name: str
    age: Optional[int] = None
    team_id: Optional[int] = None
    deleted_at: Optional[datetime.datetime] = None
    pets: list[Pet] = []
    team: Optional[Team] = None
    tags: list[Tag] = []
    profile: Optional[Profile] = None


def build_registry() -> ModelRegistry:
    """Registry with the sample models; nothing is built until first lookup."""
    registry = ModelRegistry()
    registry.register(
        User,
        relations=(
            Relation.one_to_many("pets", "pet", child_field="owner_id"),
            Relation.belongs_to("team", "team", parent_field="team_id"),
            Relation.many_to_many("tags", "tag", through="user_tag",
                                  through_parent_field="user_id", through_child_field="tag_id"),
            Relation.one_to_one("profile", "profile", child_field="user_id"),
        ),
        soft_delete_field="deleted_at",
        field_options={"name": {"index": "idx_user_name"}},
    )
    registry.register(
        Pet,
        relations=(Relation.one_to_many("toys", "toy", child_field="pet_id"),),
        foreign_keys=(ForeignKey(field="owner_id", target="user"),),
    )
    registry.register(Toy)
    registry.register(Team)
    registry.register(Tag, field_options={"label": {"unique_index": "uniq_tag_label"}})
    registry.register(UserTag, name="user_tag", primary_key=("user_id", "tag_id"))
    registry.register(Profile)
    return registry
