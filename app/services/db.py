# app/services/db.py
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker, DeclarativeBase


# -------------------------------------------------------------------
# Base (SQLAlchemy 2.x style)
# -------------------------------------------------------------------
class Base(DeclarativeBase):
    pass

# -------------------------------------------------------------------
# Engine factory with sane defaults per dialect
# -------------------------------------------------------------------
def make_engine(
    url: str,
    pool_size: int = 5,
    max_overflow: int = 10,
    pool_recycle: int = 1800,
) -> Engine:
    url = url.strip()
    is_sqlite = url.startswith("sqlite")
    kwargs = dict(
        pool_pre_ping=True,  # kill stale connections
        future=True,
    )

    if is_sqlite:
        # needed for FastAPI + threads; add SQLite niceties via events below
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        # Postgres / MySQL style pools
        kwargs.update(
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_recycle=pool_recycle,
        )

    engine = create_engine(url, **kwargs)

    if is_sqlite:
        @event.listens_for(engine, "connect")
        def _sqlite_pragmas(dbapi_conn, _):
            cur = dbapi_conn.cursor()
            # WAL improves concurrency; busy_timeout waits out a competing writer
            cur.execute("PRAGMA journal_mode=WAL;")
            cur.execute("PRAGMA foreign_keys=ON;")
            cur.execute("PRAGMA busy_timeout=5000;")
            cur.close()

    return engine

# -------------------------------------------------------------------
# Session
# -------------------------------------------------------------------
def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )

# Context manager for the store, scripts and background tasks
@contextmanager
def db_session(session_factory: sessionmaker) -> Generator[Session, None, None]:
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

# -------------------------------------------------------------------
# Schema init (dev-friendly)
# -------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """
    Dev convenience. In prod, prefer Alembic migrations.
    Runs from the app factory when DB_CREATE_ALL is on.
    """
    # Import models so SQLAlchemy registers them
    from ..models.sync_queue import SyncEvent
    from ..models.credential import Credential

    Base.metadata.create_all(bind=engine)
