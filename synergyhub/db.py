# synergyhub/db.py
# Database abstraction layer supporting PostgreSQL (production) and SQLite (dev)

from contextlib import contextmanager
from pathlib import Path as FsPath
from typing import Any, Dict, Generator, Optional, Union
from urllib.parse import urlparse

from sqlalchemy import create_engine, pool, text
from sqlalchemy.engine import Connection, Engine

from synergyhub import config

# Global engine, built lazily so tests can point DATABASE_PATH elsewhere first
_engine: Optional[Engine] = None


def is_postgres() -> bool:
    return config.IS_POSTGRES


def database_url() -> str:
    """Resolve the SQLAlchemy URL from DATABASE_URL or DATABASE_PATH."""
    if is_postgres():
        url = config.DATABASE_URL
        # SQLAlchemy only accepts the postgresql:// scheme
        if url.startswith("postgres://"):
            url = "postgresql://" + url[len("postgres://"):]
        return url

    db_path = FsPath(config.DATABASE_PATH)
    if not db_path.is_absolute():
        db_path = FsPath(__file__).resolve().parent / db_path
    return f"sqlite:///{db_path}"


def init_engine() -> Engine:
    """Initialize the SQLAlchemy engine for the configured database."""
    global _engine

    url = database_url()

    if is_postgres():
        parsed = urlparse(url)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(f"Invalid DATABASE_URL: {url[:20]}...")

        _engine = create_engine(
            url,
            poolclass=pool.QueuePool,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,  # Verify connections before use
            echo=False,
        )
        print(f"[DB] Using PostgreSQL ({parsed.hostname})")
    else:
        # TestClient and uvicorn workers share connections across threads
        _engine = create_engine(url, connect_args={"check_same_thread": False})
        if config.IS_DEV:
            print(f"[DB] Using SQLite ({url})")

    return _engine


def get_engine() -> Engine:
    if _engine is None:
        return init_engine()
    return _engine


def reset_engine() -> None:
    """Dispose the current engine; the next connection rebuilds it from config."""
    global _engine
    if _engine is not None:
        _engine.dispose()
    _engine = None


@contextmanager
def get_db_connection() -> Generator[Connection, None, None]:
    """Context manager for database connections."""
    with get_engine().connect() as conn:
        yield conn


def get_db() -> Generator[Connection, None, None]:
    """FastAPI dependency yielding a connection for the duration of a request."""
    with get_db_connection() as conn:
        yield conn


def execute_query(
    conn: Connection,
    query: str,
    params: Union[Dict[str, Any], None] = None,
) -> Any:
    """
    Execute a query with named parameters (:name style).

    The same placeholder style works on SQLite and PostgreSQL through
    sqlalchemy.text, so callers never branch on the backend.
    """
    return conn.execute(text(query), params or {})


def insert_returning_id(conn: Connection, query: str, params: Dict[str, Any]) -> int:
    """Run an INSERT and return the new row id on either backend."""
    if is_postgres():
        return int(execute_query(conn, query + " RETURNING id", params).scalar_one())
    result = execute_query(conn, query, params)
    return int(result.lastrowid)


def row_to_dict(row) -> dict:
    """
    Convert a result row to a plain dict.

    Returns {} for None so callers can use .get() without guarding.
    """
    if row is None:
        return {}
    return dict(row._mapping)


def commit(conn: Connection) -> None:
    conn.commit()


def rollback(conn: Connection) -> None:
    conn.rollback()
