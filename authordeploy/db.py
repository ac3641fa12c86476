from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Generator, Iterator

from sqlalchemy.engine import Engine, make_url
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

DEFAULT_DATABASE_URL = "sqlite:///./authordeploy.db"


def _is_sqlite_memory(url: str) -> bool:
    parsed = make_url(url)
    return parsed.get_backend_name() == "sqlite" and parsed.database in (None, "", ":memory:")


def build_engine(url: str) -> Engine:
    """Create an engine for ``url``.

    An in-memory SQLite database only exists on the connection that created it,
    so it is pinned to one shared connection. Every other database, file SQLite
    included, keeps a real pool so the reconciliation loop and request handlers
    never share a transaction.
    """
    kwargs: dict = {"echo": False}
    if make_url(url).get_backend_name() == "sqlite":
        # Sessions are opened on request threads and on the loop thread.
        kwargs["connect_args"] = {"check_same_thread": False}
        if _is_sqlite_memory(url):
            kwargs["poolclass"] = StaticPool
    return create_engine(url, **kwargs)


DATABASE_URL = os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)
engine = build_engine(DATABASE_URL)


def init_db(engine: Engine) -> None:
    """Create any missing tables; existing tables and rows are left alone."""
    import authordeploy.models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session() -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


@contextmanager
def session_scope() -> Iterator[Session]:
    with Session(engine) as session:
        yield session
