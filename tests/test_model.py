import datetime
import decimal
import enum
import threading
import time
from typing import Optional

import pytest
from pydantic import BaseModel, ValidationError

from ormstack.model import Field, ForeignKey, Model, ModelRegistry
from ormstack.relation import Relation, RelationKind
from ormstack.utils.annotations import type_tag_for, unwrap_optional

from tests.helpers import Pet, User, UserTag, build_registry, item_model


class TestField:

    def test_column_name_defaults_to_name(self):
        field = Field(name="age", type="int")
        assert field.column_name == "age"
        assert field.column.name == "age"
        assert Field(name="age", column_name="user_age").column.name == "user_age"

    def test_primary_key_is_not_nullable(self):
        assert Field(name="id", primary_key=True).nullable is False
        assert Field(name="x").nullable is True


class TestModel:

    def test_lookup(self):
        model = item_model()
        assert model.field("name").column_name == "name"
        assert model.field_at(2).name == "code"
        assert model.c.price.name == "price"
        assert model.c["owner_id"].name == "owner_id"
        assert [c.name for c in model.columns] == ["id", "name", "code", "price", "owner_id"]
        assert model.primary_key.name == "id"
        assert model.auto_increment_key.name == "id"
        assert list(model.indexes) == ["idx_item_name"]
        assert list(model.unique_indexes) == ["uniq_item_code"]
        with pytest.raises(KeyError):
            model.field("nope")
        with pytest.raises(KeyError):
            model.field_at(5)
        with pytest.raises(AttributeError):
            model.c.nope

    def test_validation(self):
        with pytest.raises(ValidationError, match="duplicate field names"):
            Model(name="m", fields=(Field(name="a"), Field(name="a")))
        with pytest.raises(ValidationError, match="foreign key on unknown field"):
            Model(name="m", fields=(Field(name="a"),), foreign_keys=(ForeignKey(field="b", target="x"),))
        with pytest.raises(ValidationError, match="soft delete"):
            Model(name="m", fields=(Field(name="a"),), soft_delete_field="deleted_at")

    def test_is_immutable(self):
        model = item_model()
        with pytest.raises(ValidationError):
            model.name = "other"

    def test_column_values_skip_unset_generated_key(self):
        model = item_model()
        values = model.column_values({"name": "a", "price": 1.0})
        assert [cv.name for cv in values] == ["name", "code", "price", "owner_id"]
        values = model.column_values({"id": 4, "name": "a"})
        assert [(cv.name, cv.value) for cv in values][:2] == [("id", 4), ("name", "a")]
        values = model.column_values({"id": 4, "name": "a"}, names=["name"])
        assert [cv.name for cv in values] == ["name"]

    def test_hydrate(self):
        model = item_model()
        assert model.hydrate({"id": 1, "name": "a", "unknown": 3}) == {"id": 1, "name": "a"}
        user_model = Model.from_record_type(User, relations=build_registry().get(User).relations)
        user = user_model.hydrate({"id": 1, "name": "Ann", "age": 30, "team_id": None, "deleted_at": None})
        assert isinstance(user, User)
        assert user.pets == []

    def test_set_value(self):
        record = {"a": 1}
        Model.set_value(record, "a", 2)
        assert record["a"] == 2
        pet = Pet(name="Rex")
        Model.set_value(pet, "toys", ["ball"])
        assert pet.toys == ["ball"]


class TestFromRecordType:

    def test_fields_from_annotations(self):
        model = build_registry().get(User)
        assert model.name == "user"
        assert [f.name for f in model.fields] == ["id", "name", "age", "team_id", "deleted_at"]
        assert [f.type for f in model.fields] == ["int", "str", "int", "int", "datetime"]
        assert model.field("name").nullable is False
        assert model.field("name").index == "idx_user_name"
        assert model.field("age").nullable is True
        assert model.auto_increment_key.name == "id"
        assert model.soft_delete_field == "deleted_at"
        assert model.relation("tags").kind is RelationKind.MANY_TO_MANY

    def test_composite_key(self):
        model = build_registry().get(UserTag)
        assert model.name == "user_tag"
        assert [f.name for f in model.primary_keys] == ["user_id", "tag_id"]
        assert model.auto_increment_key is None
        with pytest.raises(ValueError, match="2 primary keys"):
            model.primary_key


class TestModelRegistry:

    def test_lookup_by_type_name_and_model(self):
        registry = build_registry()
        model = registry.get(User)
        assert registry.get("user") is model
        assert registry.get(model) is model
        assert User in registry and "user" in registry
        with pytest.raises(KeyError):
            registry.get("nosuch")
        assert {m.name for m in registry} >= {"user", "pet", "user_tag"}

    def test_add_built_model(self):
        registry = ModelRegistry()
        model = registry.add(item_model())
        assert registry.get("item") is model

    def test_model_is_built_once_under_concurrency(self):
        registry = ModelRegistry()
        calls = []

        def builder():
            calls.append(1)
            time.sleep(0.05)
            return item_model()

        registry.register("item", builder)
        results = []
        threads = [threading.Thread(target=lambda: results.append(registry.get("item"))) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert len(calls) == 1
        assert len(results) == 8
        assert all(result is results[0] for result in results)


class TestRelation:

    def test_many_to_many_needs_through(self):
        with pytest.raises(ValidationError):
            Relation(kind=RelationKind.MANY_TO_MANY, container="tags", target="tag")
        with pytest.raises(ValidationError):
            Relation(kind=RelationKind.ONE_TO_MANY, container="pets", target="pet", through="x")

    def test_constructors(self):
        relation = Relation.belongs_to("team", "team", parent_field="team_id")
        assert (relation.parent_field, relation.child_field) == ("team_id", "id")
        assert relation.is_collection is False
        assert Relation.one_to_many("pets", "pet", child_field="owner_id").is_collection is True


class Color(enum.Enum):
    RED = "red"


class Nested(BaseModel):
    x: int


@pytest.mark.parametrize("annotation,tag", [
    (bool, "bool"),
    (int, "int"),
    (Optional[int], "int"),
    (float, "float"),
    (decimal.Decimal, "decimal"),
    (str, "str"),
    (bytes, "bytes"),
    (datetime.datetime, "datetime"),
    (datetime.date, "date"),
    (dict[str, int], "json"),
    (list[int], "json"),
    (Color, "str"),
    (Nested, "json"),
])
def test_type_tags(annotation, tag):
    assert type_tag_for(annotation) == tag


def test_unwrap_optional():
    assert unwrap_optional(Optional[int]) == (int, True)
    assert unwrap_optional(int | None) == (int, True)
    assert unwrap_optional(int) == (int, False)
