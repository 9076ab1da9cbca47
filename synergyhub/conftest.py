"""
Shared fixtures: every DB-backed test gets its own SQLite file.
"""

import pytest

from synergyhub import config
from synergyhub.auth_context import create_access_token, hash_password
from synergyhub.db import commit, get_db_connection, reset_engine
from synergyhub.migrate import run_migrations
from synergyhub.repository import create_user


@pytest.fixture
def db(tmp_path, monkeypatch):
    """Point the engine at a fresh database file and create the schema."""
    monkeypatch.setattr(config, "DATABASE_URL", "")
    monkeypatch.setattr(config, "IS_POSTGRES", False)
    monkeypatch.setattr(config, "DATABASE_PATH", str(tmp_path / "synergyhub_test.db"))
    reset_engine()
    run_migrations()
    yield
    reset_engine()


@pytest.fixture
def conn(db):
    with get_db_connection() as c:
        yield c


@pytest.fixture
def make_user(conn):
    """Factory: make_user("a@test.com") -> User (committed)."""
    def _make(email, name=None, password="password123"):
        user = create_user(conn, email, hash_password(password), name)
        commit(conn)
        return user
    return _make


@pytest.fixture
def auth_headers():
    """Factory: auth_headers(user) -> Authorization header with a fresh token."""
    def _headers(user):
        token = create_access_token({"sub": str(user.id), "email": user.email})
        return {"Authorization": f"Bearer {token}"}
    return _headers
