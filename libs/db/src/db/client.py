"""Engine and session plumbing shared by the cache and the rule store.

Engines are cached per database URL, so one process can hold several
independent stores; tests open one SQLite file each. ``DATABASE_URL`` is the
fallback when a caller passes no URL.

SQLite connections get a busy timeout so concurrent writers wait for the
file lock instead of failing at once; whatever still surfaces as
``OperationalError`` is retried by the cache's batch writer.
"""

from __future__ import annotations

import os
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .models.analysis import Base

SQLITE_BUSY_TIMEOUT_MS = 5000

_ENGINES: dict[str, Engine] = {}
_SESSION_MAKERS: dict[str, sessionmaker[Session]] = {}
_LOCK = threading.Lock()


def resolve_database_url(override: str | None = None) -> str:
    url = override or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("no database URL given and DATABASE_URL is not set")
    return url


def _install_sqlite_pragmas(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn: Any, _record: Any) -> None:
        cur = dbapi_conn.cursor()
        try:
            cur.execute(f"PRAGMA busy_timeout = {SQLITE_BUSY_TIMEOUT_MS}")
            cur.execute("PRAGMA foreign_keys = ON")
        finally:
            cur.close()


def _build(url: str) -> Engine:
    engine = create_engine(url, pool_pre_ping=True)
    if engine.dialect.name == "sqlite":
        _install_sqlite_pragmas(engine)
    _SESSION_MAKERS[url] = sessionmaker(bind=engine, expire_on_commit=False, class_=Session)
    _ENGINES[url] = engine
    return engine


def get_engine(*, database_url: str | None = None) -> Engine:
    url = resolve_database_url(database_url)
    with _LOCK:
        return _ENGINES.get(url) or _build(url)


def get_session(*, database_url: str | None = None) -> Session:
    url = resolve_database_url(database_url)
    get_engine(database_url=url)
    return _SESSION_MAKERS[url]()


@contextmanager
def session_scope(*, database_url: str | None = None) -> Iterator[Session]:
    """Yield a session that commits on success and rolls back on any error."""

    session = get_session(database_url=database_url)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_schema(*, database_url: str | None = None) -> Engine:
    """Create missing ``sa_*`` tables (idempotent) and return the engine."""

    engine = get_engine(database_url=database_url)
    Base.metadata.create_all(bind=engine)
    return engine


def dispose_engine(*, database_url: str) -> None:
    with _LOCK:
        engine = _ENGINES.pop(database_url, None)
        _SESSION_MAKERS.pop(database_url, None)
    if engine is not None:
        engine.dispose()


__all__ = [
    "SQLITE_BUSY_TIMEOUT_MS",
    "resolve_database_url",
    "get_engine",
    "get_session",
    "session_scope",
    "init_schema",
    "dispose_engine",
]
