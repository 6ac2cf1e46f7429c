import logging
import os

import pytest

from ormstack.connection import connect

from tests.helpers import Pet, Profile, Tag, Team, Toy, User, UserTag, build_registry


@pytest.fixture
def registry():
    return build_registry()


@pytest.fixture(scope="function")
def connection(request, registry):
    """Temporary file SQLite database for each test."""
    os.makedirs("/tmp/ormstack-tests", exist_ok=True)
    path = f"/tmp/ormstack-tests/test-{request.function.__module__}-{request.function.__name__}.sqlite3"
    logging.getLogger("ormstack.tests").info(path)
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    connection = connect(f"sqlite:///{path}", registry=registry)
    yield connection
    connection.close()


@pytest.fixture
def setup_db(connection, registry):
    """Connection with every sample table created."""
    for record_type in (Team, User, Pet, Toy, Tag, UserTag, Profile):
        connection.q(record_type).create_table()
    return connection
