"""SQLModel engine construction and table setup."""

import logging

from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

logger = logging.getLogger(__name__)


def make_engine(database_url: str) -> Engine:
    """Build an engine for the given URL.

    SQLite needs check_same_thread=False, and an in-memory database must share
    one connection or every session would see an empty schema.
    """
    kwargs = {}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    return create_engine(database_url, echo=False, **kwargs)


def create_db_and_tables(engine: Engine):
    """Create all tables. Called on startup."""
    # Import so the table classes are registered on the metadata
    import automator.models  # noqa: F401

    SQLModel.metadata.create_all(engine)
    logger.info(f"Database ready ({engine.url.drivername})")
