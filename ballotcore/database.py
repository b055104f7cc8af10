from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from .config import settings

logger = logging.getLogger(__name__)


def _is_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def _is_sqlite_memory(database_url: str) -> bool:
    return database_url in ("sqlite://", "sqlite:///:memory:")


def _is_postgres(database_url: str) -> bool:
    return database_url.startswith("postgresql")


def _ensure_sqlite_dir(database_url: str) -> None:
    """
    Ensure the parent folder exists for SQLite file-based DB URLs like:
      sqlite:///./data/ballotcore.sqlite
      sqlite:////absolute/path/to/db.sqlite
    """
    if not database_url.startswith("sqlite:///") or _is_sqlite_memory(database_url):
        return

    path = database_url.replace("sqlite:///", "", 1)
    folder = os.path.dirname(path)
    if folder:
        os.makedirs(folder, exist_ok=True)


def _sqlite_pragmas(engine: Engine) -> None:
    """
    WAL + busy_timeout let concurrent vote submissions queue on the write lock
    instead of failing with 'database is locked'.
    """

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        # busy_timeout first: the journal_mode switch itself can hit a held lock.
        cursor.execute("PRAGMA busy_timeout=10000;")
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA synchronous=NORMAL;")
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.close()


def _postgres_session_settings(engine: Engine) -> None:
    """
    Per-connection limits so a stuck query can't hold a voter's row lock forever.
    """

    @event.listens_for(engine, "connect")
    def _set_postgres_settings(dbapi_connection, connection_record):
        try:
            cursor = dbapi_connection.cursor()
            cursor.execute("SET statement_timeout = 30000;")
            cursor.execute("SET lock_timeout = 10000;")
            cursor.close()
        except Exception:
            # Don't block startup if the provider disallows it
            logger.warning("Could not apply Postgres session settings", exc_info=True)


def get_engine(database_url: Optional[str] = None) -> Engine:
    """
    Create and return the SQLAlchemy engine.

    - Defaults to settings.resolved_database_url
    - SQLite gets pragmas + check_same_thread=False for FastAPI worker threads
    - In-memory SQLite shares one connection (StaticPool) so every session sees the same data
    """
    database_url = database_url or settings.resolved_database_url

    if _is_sqlite(database_url):
        _ensure_sqlite_dir(database_url)

    connect_args = {"check_same_thread": False} if _is_sqlite(database_url) else {}
    kwargs = {}
    if _is_sqlite_memory(database_url):
        kwargs["poolclass"] = StaticPool

    engine = create_engine(
        database_url,
        echo=False,
        connect_args=connect_args,
        pool_pre_ping=True,
        **kwargs,
    )

    if _is_sqlite(database_url):
        _sqlite_pragmas(engine)

    if _is_postgres(database_url):
        _postgres_session_settings(engine)

    return engine


# Single, shared engine for the app process
engine: Engine = get_engine()


def register_models() -> None:
    """
    Central place to import ALL models so SQLModel registers them.
    """
    from .models.voter import Voter  # noqa: F401
    from .models.election import Election  # noqa: F401
    from .models.partylist import Partylist  # noqa: F401
    from .models.position import Position  # noqa: F401
    from .models.candidate import Candidate  # noqa: F401
    from .models.voting_session import VotingSession  # noqa: F401
    from .models.vote import BallotReceipt, Vote  # noqa: F401


def init_db(create_tables: bool = True, bind: Optional[Engine] = None) -> None:
    """
    Register models, then create missing tables.
    Non-destructive: create_all will not drop or alter existing tables.
    """
    register_models()
    if create_tables:
        SQLModel.metadata.create_all(bind or engine)


def get_session() -> Session:
    """
    Simple session factory (OK for scripts).
    For FastAPI routes, prefer the yield-dependency `get_db()`.
    """
    return Session(engine)


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency:
        def route(db: Session = Depends(get_db)):
            ...
    Ensures the session is closed after each request.
    """
    with Session(engine) as session:
        yield session


@contextmanager
def session_scope(bind: Optional[Engine] = None) -> Generator[Session, None, None]:
    """
    Context manager for scripts/jobs that need commit/rollback safety.

    Usage:
        with session_scope() as db:
            db.add(...)
    """
    session = Session(bind or engine)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
