"""End-to-end tests for ormstack.query.Query on a file-backed SQLite database."""

import sqlite3

import pytest

from ormstack.exceptions import BatchError, PreloadError, UnsupportedOperation
from ormstack.report import Report

from tests.helpers import Pet, Profile, Tag, Team, Toy, User, UserTag


@pytest.fixture
def people(setup_db):
    setup_db.q(User).insert(
        User(name="Ann", age=30),
        User(name="Bob", age=17),
        User(name="Cid", age=45),
    )
    return setup_db


def _names(records):
    return [record.name for record in records]


class TestInsert:

    def test_insert_fills_generated_keys(self, setup_db):
        ann, bob = User(name="Ann"), User(name="Bob")
        report = setup_db.q(User).insert(ann, bob)
        assert (ann.id, bob.id) == (1, 2)
        assert [entry.index for entry in report] == ["0", "1"]
        assert report.failures == {}
        assert report.at("1")[0].result.last_insert_id == 2
        assert report.at("0")[0].sql == 'INSERT INTO "user"(name,age,team_id,deleted_at) VALUES(?,?,?,?)'

    def test_failing_records_do_not_stop_the_batch(self, setup_db):
        tags = [Tag(label="x"), Tag(label="x"), Tag(label="y")]
        with pytest.raises(BatchError) as excinfo:
            setup_db.q(Tag).insert(*tags)
        assert list(excinfo.value.failures) == ["1"]
        assert isinstance(excinfo.value.failures["1"], sqlite3.IntegrityError)
        assert excinfo.value.report.at("2")[0].ok
        assert tags[1].id is None
        assert [tag.label for tag in setup_db.q(Tag).order_by("id").find()] == ["x", "y"]

    def test_insert_composite_key(self, setup_db):
        setup_db.q(User).insert(User(name="Ann"))
        setup_db.q(Tag).insert(Tag(label="x"))
        setup_db.q(UserTag).insert(UserTag(user_id=1, tag_id=1))
        assert setup_db.q(UserTag).count() == 1


class TestFind:

    def test_where_lookups(self, people):
        q = people.q(User)
        assert _names(q.where(age__gte=18).order_by("age").find()) == ["Ann", "Cid"]
        assert _names(q.where(name="Bob").find()) == ["Bob"]
        assert _names(q.where(name__in=["Ann", "Cid"]).order_by("-name").find()) == ["Cid", "Ann"]
        assert _names(q.where(age__range=(20, 40)).find()) == ["Ann"]
        assert _names(q.where(name__startswith="C").find()) == ["Cid"]
        assert _names(q.where(name__endswith="b").find()) == ["Bob"]
        assert _names(q.where(name__contains="i").find()) == ["Cid"]
        assert _names(q.where(team_id__isnull=True).order_by("id").find()) == ["Ann", "Bob", "Cid"]
        assert q.where(team_id__isnull=False).find() == []
        assert _names(q.where(age__lt=18).find()) == ["Bob"]
        with pytest.raises(ValueError, match="Unknown lookup"):
            q.where(age__nope=1)

    def test_conditions_and_or_where(self, people):
        model = people.registry.get(User)
        q = people.q(User).where(model.c.age > 40).or_where(model.c.name == "Bob").order_by("id")
        assert _names(q.find()) == ["Bob", "Cid"]
        assert q.find_exec().sql == (
            'SELECT id,name,age,team_id,deleted_at FROM "user" '
            "WHERE (age > ? OR name = ?) AND deleted_at IS NULL ORDER BY id"
        )

    def test_query_is_immutable(self, people):
        base = people.q(User)
        filtered = base.where(age__gte=18)
        assert base.count() == 3
        assert filtered.count() == 2

    def test_limit_offset_first_count(self, people):
        q = people.q(User).order_by("id")
        assert _names(q.limit(2).find()) == ["Ann", "Bob"]
        assert _names(q.offset(1).find()) == ["Bob", "Cid"]
        assert _names(q.limit(1).offset(2).find()) == ["Cid"]
        assert q.first().name == "Ann"
        assert q.where(name="Nobody").first() is None
        assert q.count() == 3
        assert [user.name for user in q] == ["Ann", "Bob", "Cid"]

    def test_get_one(self, people):
        q = people.q(User)
        assert q.get_one(name="Ann").age == 30
        with pytest.raises(ValueError, match="no results"):
            q.get_one(name="Nobody")
        with pytest.raises(ValueError, match="more than one"):
            q.get_one(age__gt=0)

    def test_select_and_group_by_statement(self, setup_db):
        q = setup_db.q(Pet).select("owner_id").group_by("owner_id").order_by("owner_id")
        assert q.find_exec().sql == 'SELECT owner_id FROM "pet" GROUP BY owner_id ORDER BY owner_id'

    def test_find_records_into_report(self, people):
        report = Report()
        people.q(User).where(name="Ann").find(report=report)
        assert [(entry.index, entry.args, entry.result) for entry in report] == [("0", ("Ann",), 1)]


class TestWrite:

    def test_update(self, people):
        assert people.q(User).where(name="Bob").update(age=18) == 1
        assert people.q(User).where(age__gte=18).count() == 3
        assert people.q(User).update({}) == 0

    def test_update_records(self, people):
        ann, bob = people.q(User).where(name__in=["Ann", "Bob"]).order_by("id").find()
        ann.age, bob.age, bob.name = 31, 18, "Bobby"
        people.q(User).update_records(ann, bob, fields=["age"])
        assert [(u.name, u.age) for u in people.q(User).order_by("id").limit(2).find()] == [
            ("Ann", 31), ("Bob", 18),
        ]
        report = people.q(User).update_records(bob)
        assert report.at("0")[0].sql == 'UPDATE "user" SET name=?,age=?,team_id=?,deleted_at=? WHERE id = ?'
        assert people.q(User).where(id=bob.id).first().name == "Bobby"

    def test_replace(self, people):
        people.q(User).replace(User(id=1, name="Ann2", age=1), User(name="Dan"))
        assert people.q(User).count() == 4
        assert people.q(User).where(id=1).first().name == "Ann2"

    def test_soft_delete(self, people):
        assert people.q(User).where(name="Bob").delete() == 1
        assert _names(people.q(User).order_by("id").find()) == ["Ann", "Cid"]
        assert people.q(User).count() == 2
        everyone = people.q(User).include_deleted()
        assert everyone.count() == 3
        bob = everyone.where(name="Bob").first()
        assert bob.deleted_at is not None
        assert everyone.where(name="Bob").delete() == 1
        assert everyone.count() == 2

    def test_hard_delete(self, setup_db):
        setup_db.q(Team).insert(Team(name="red"), Team(name="blue"))
        assert setup_db.q(Team).where(name="red").delete() == 1
        assert _names(setup_db.q(Team).find()) == ["blue"]
        with pytest.raises(UnsupportedOperation):
            setup_db.q(Team).include_deleted()


class TestSchema:

    def test_has_create_drop(self, connection):
        q = connection.q(Team)
        assert q.has_table() is False
        q.create_table()
        assert q.has_table() is True
        q.create_table(if_not_exists=True)
        with pytest.raises(sqlite3.OperationalError):
            q.create_table()
        q.drop_table()
        assert q.has_table() is False
        q.drop_table(if_exists=True)

    def test_indexes_are_created(self, setup_db):
        rows = setup_db.q(User).template(
            "SELECT name FROM sqlite_master WHERE type = 'index' AND tbl_name = 'user'"
        )
        assert {"name": "idx_user_name"} in rows

    def test_foreign_keys_on_sqlite(self, setup_db):
        with pytest.raises(UnsupportedOperation):
            setup_db.q(Pet).add_foreign_key("owner_id")
        with pytest.raises(KeyError):
            setup_db.q(Pet).add_foreign_key("name")
        with pytest.raises(UnsupportedOperation):
            setup_db.q(Pet).drop_foreign_key("owner_id")


class TestTemplate:

    def test_query_template(self, people):
        q = people.q(User).where(age__gte=18)
        assert q.template("SELECT count(*) AS n FROM $ModelName$Conditions") == [{"n": 2}]
        assert q.template("UPDATE $ModelName SET $FN-age = $FN-age + 1$Conditions") == 2
        assert people.q(User).where(name="Ann").first().age == 31

    def test_values_and_columns(self, people):
        q = people.q(User).select("name", "age")
        exec_value = q.template_exec("INSERT INTO $ModelName($Columns) VALUES$Values", {"name": "Dan", "age": 5})
        assert exec_value.sql == 'INSERT INTO "user"(name,age) VALUES(?,?)'
        q.template("INSERT INTO $ModelName($Columns) VALUES$Values", {"name": "Dan", "age": 5})
        assert people.q(User).where(name="Dan").first().age == 5


class TestPreload:

    @pytest.fixture
    def family(self, setup_db):
        red = Team(name="red")
        setup_db.q(Team).insert(red)
        ann, bob = User(name="Ann", team_id=red.id), User(name="Bob")
        setup_db.q(User).insert(ann, bob)
        rex, kit = Pet(name="Rex", owner_id=ann.id), Pet(name="Kit", owner_id=bob.id)
        setup_db.q(Pet).insert(rex, kit)
        setup_db.q(Toy).insert(Toy(name="ball", pet_id=rex.id))
        x, y = Tag(label="x"), Tag(label="y")
        setup_db.q(Tag).insert(x, y)
        setup_db.q(UserTag).insert(UserTag(user_id=ann.id, tag_id=y.id), UserTag(user_id=ann.id, tag_id=x.id))
        setup_db.q(Profile).insert(Profile(user_id=bob.id, bio="hi"))
        return setup_db

    def test_find_with_preloads(self, family):
        report = Report()
        ann, bob = family.q(User).order_by("id").preload(
            "pets.toys", "team", "tags", "profile",
        ).find(report=report)
        assert [pet.name for pet in ann.pets] == ["Rex"]
        assert [toy.name for toy in ann.pets[0].toys] == ["ball"]
        assert ann.team.name == "red"
        assert sorted(tag.label for tag in ann.tags) == ["x", "y"]
        assert ann.profile is None
        assert [pet.name for pet in bob.pets] == ["Kit"]
        assert bob.pets[0].toys == []
        assert bob.team is None
        assert bob.tags == []
        assert bob.profile.bio == "hi"
        assert [entry.index for entry in report] == ["0", "0-0", "0-0-0", "0-1", "0-2", "0-2", "0-3"]

    def test_preload_where(self, family):
        pet = family.registry.get(Pet)
        users = family.q(User).order_by("id").preload("pets", where=pet.c.name == "Kit").find()
        assert [user.pets for user in users][0] == []
        assert [p.name for p in users[1].pets] == ["Kit"]

    def test_unknown_relation_is_rejected_early(self, family):
        with pytest.raises(KeyError):
            family.q(User).preload("nope")

    def test_preload_failure_keeps_partial_records(self, family):
        family.q(Toy).drop_table()
        with pytest.raises(PreloadError) as excinfo:
            family.q(User).order_by("id").preload("pets.toys", "team").find()
        error = excinfo.value
        assert list(error.failures) == ["0-0-0"]
        ann = error.records[0]
        assert [pet.name for pet in ann.pets] == ["Rex"]
        assert ann.team.name == "red"
