# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from top5.errors import StoreUnavailable
from top5.infra.models import Base

logger = logging.getLogger(__name__)

_ENGINE: Optional[Engine] = None
_SESSION_FACTORY: Optional[sessionmaker] = None


def default_database_url() -> str:
    url = os.getenv("TOP5_DATABASE_URL")
    if url:
        return url
    data_dir = Path(os.getenv("TOP5_DATA_DIR", "data")).resolve()
    data_dir.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{data_dir / 'top5.db'}"


def _enable_sqlite_fks(dbapi_conn, _record) -> None:
    cur = dbapi_conn.cursor()
    cur.execute("PRAGMA foreign_keys = ON")
    cur.close()


def configure(url: Optional[str] = None) -> Engine:
    """(Re)build the process-wide engine and session factory.

    Called lazily on first use; tests call it directly to point the app at a
    temporary database.
    """
    global _ENGINE, _SESSION_FACTORY
    url = url or default_database_url()
    if _ENGINE is not None:
        _ENGINE.dispose()

    connect_args = {}
    if url.startswith("sqlite"):
        # FastAPI runs sync endpoints in a threadpool.
        connect_args["check_same_thread"] = False

    engine = create_engine(url, connect_args=connect_args)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_fks)

    _ENGINE = engine
    _SESSION_FACTORY = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    logger.info("Database configured url=%s", engine.url.render_as_string(hide_password=True))
    return engine


def get_engine() -> Engine:
    if _ENGINE is None:
        return configure()
    return _ENGINE


def init_db() -> None:
    """Create all tables that do not exist yet."""
    with store_errors("init_db"):
        Base.metadata.create_all(bind=get_engine())


def new_session() -> Session:
    get_engine()
    assert _SESSION_FACTORY is not None
    return _SESSION_FACTORY()


def get_db() -> Iterator[Session]:
    """FastAPI dependency: one SQLAlchemy session per request."""
    db = new_session()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def store_errors(operation: str) -> Iterator[None]:
    """Translate driver/ORM failures into StoreUnavailable.

    Every store round-trip runs inside this block: an unreachable database
    must surface as StoreUnavailable, never as an authentication failure.
    """
    try:
        yield
    except SQLAlchemyError as e:
        logger.exception("Store failure during %s", operation)
        raise StoreUnavailable(f"{operation}: {e.__class__.__name__}") from e
