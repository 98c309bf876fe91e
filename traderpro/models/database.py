"""
Row store engine and session management

The service root builds one engine per process from ``DATABASE__URL``;
nothing here creates an engine at import time.
"""
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool

from traderpro.logger import logger

# Base class for models
Base = declarative_base()


def create_store_engine(url: str, echo: bool = False) -> Engine:
    """
    Create a synchronous engine for the row store

    Store calls run in worker threads via ``asyncio.to_thread``, so SQLite
    connections must be shareable across threads.
    """
    kwargs = {"echo": echo, "pool_pre_ping": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, otherwise every thread sees an empty database
            kwargs["poolclass"] = StaticPool
        else:
            db_path = Path(url.replace("sqlite:///", ""))
            db_path.parent.mkdir(parents=True, exist_ok=True)
    return create_engine(url, **kwargs)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


@contextmanager
def session_scope(factory: sessionmaker) -> Iterator[Session]:
    """
    Session context, committing on success and rolling back on error

    Yields:
        Session: Database session
    """
    session = factory()
    try:
        yield session
        session.commit()
    except Exception as e:
        session.rollback()
        logger.error(f"Database session error: {e}")
        raise
    finally:
        session.close()


def init_db(engine: Engine, tables: Optional[list] = None):
    """Create the service tables that do not exist yet"""
    # Import models so they register on Base.metadata
    from traderpro.models import schemas  # noqa: F401

    Base.metadata.create_all(bind=engine, tables=tables)
    logger.info("Row store tables initialized")
