import uuid
from datetime import datetime, timedelta, timezone

import pytest
from psycopg2 import errors as pg_errors

from src.api.auth_store import (
    SCHEMA_SQL,
    DuplicateEmailError,
    InMemoryAuthStore,
    PostgresAuthStore,
)


class FakePool:
    """Records SQL and hands back canned rows in place of PostgresPool."""

    def __init__(self):
        self.calls = []
        self.next_row = None
        self.rowcount = 1
        self.raise_on_insert = None
        self.closed = False

    def execute(self, query, params=None):
        self.calls.append(("execute", query, params))
        return self.rowcount

    def fetch_one(self, query, params=None):
        self.calls.append(("fetch_one", query, params))
        return self.next_row

    def execute_returning_one(self, query, params=None):
        self.calls.append(("execute_returning_one", query, params))
        if self.raise_on_insert is not None:
            raise self.raise_on_insert
        return self.next_row

    def close(self):
        self.closed = True


def _user_row(user_id):
    now = datetime.now(timezone.utc)
    return {
        "id": str(user_id),
        "email": "ada@example.com",
        "name": "Ada",
        "email_verified": False,
        "image": None,
        "password_hash": "x",
        "created_at": now,
        "updated_at": now,
    }


def test_postgres_ensure_schema_runs_every_statement():
    pool = FakePool()
    PostgresAuthStore(pool).ensure_schema()
    executed = [q for kind, q, _ in pool.calls if kind == "execute"]
    assert executed == list(SCHEMA_SQL)
    assert any("CREATE TABLE IF NOT EXISTS users" in q for q in executed)
    assert any("CREATE TABLE IF NOT EXISTS sessions" in q for q in executed)


def test_postgres_create_user_converts_ids():
    pool = FakePool()
    user_id = uuid.uuid4()
    pool.next_row = _user_row(user_id)
    user = PostgresAuthStore(pool).create_user("ada@example.com", "Ada", "hash")
    assert user["id"] == user_id
    kind, query, params = pool.calls[-1]
    assert "INSERT INTO users" in query
    assert params[1:] == ["ada@example.com", "Ada", None, "hash"]


def test_postgres_create_user_duplicate_email():
    pool = FakePool()
    pool.raise_on_insert = pg_errors.UniqueViolation()
    with pytest.raises(DuplicateEmailError):
        PostgresAuthStore(pool).create_user("ada@example.com", "Ada", "hash")


def test_postgres_get_user_missing_returns_none():
    pool = FakePool()
    assert PostgresAuthStore(pool).get_user(uuid.uuid4()) is None


def test_postgres_session_queries_use_string_ids():
    pool = FakePool()
    store = PostgresAuthStore(pool)
    session_id = uuid.uuid4()
    assert store.delete_session(session_id) is True
    pool.rowcount = 0
    assert store.delete_session(session_id) is False
    assert pool.calls[-1][2] == [str(session_id)]


def test_postgres_close_releases_pool():
    pool = FakePool()
    PostgresAuthStore(pool).close()
    assert pool.closed


def test_memory_store_user_and_session_lifecycle():
    store = InMemoryAuthStore()
    user = store.create_user("ada@example.com", "Ada", "hash")
    assert store.get_user_by_email("ada@example.com")["id"] == user["id"]
    with pytest.raises(DuplicateEmailError):
        store.create_user("ada@example.com", "Ada again", "hash")

    expires = datetime.now(timezone.utc) + timedelta(hours=1)
    first = store.create_session(user["id"], expires, ip_address="127.0.0.1", user_agent="pytest")
    assert first["ip_address"] == "127.0.0.1"
    assert store.get_session(first["id"])["user_id"] == user["id"]

    assert store.delete_session(first["id"]) is True
    assert store.delete_session(first["id"]) is False
    assert store.sessions == {}


def test_memory_store_returns_copies():
    store = InMemoryAuthStore()
    user = store.create_user("ada@example.com", "Ada", "hash")
    user["name"] = "changed"
    assert store.get_user(user["id"])["name"] == "Ada"
