import sqlite3

import pytest

from multiquery.engine_factory import ConnectionFactory
from multiquery.environment_config import EndpointDescriptor


def create_sqlite_db(path, rows):
    """Creates a small ``users`` table in a SQLite file."""
    conn = sqlite3.connect(path)
    try:
        conn.execute("CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT, email TEXT)")
        conn.executemany("INSERT INTO users (id, name, email) VALUES (?, ?, ?)", rows)
        conn.commit()
    finally:
        conn.close()


@pytest.fixture
def sqlite_endpoint(tmp_path):
    """Factory returning an EndpointDescriptor backed by a fresh SQLite file."""
    def _make(endpoint_id, rows=((1, "alice", "alice@example.com"), (2, "bob", None))):
        path = tmp_path / f"{endpoint_id}.db"
        create_sqlite_db(path, rows)
        return EndpointDescriptor(id=endpoint_id, engine="sqlite", database=str(path))
    return _make


@pytest.fixture
def missing_sqlite_endpoint(tmp_path):
    """Endpoint whose database file does not exist (unreachable)."""
    return EndpointDescriptor(id="ghost", engine="sqlite", database=str(tmp_path / "nope" / "ghost.db"))


@pytest.fixture
def connection_factory():
    factory = ConnectionFactory()
    yield factory
    factory.dispose()
