"""SQLAlchemy engine and session management."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base

logger = logging.getLogger(__name__)


def get_engine(db_url: str) -> Engine:
    """Create an engine, making sure a local SQLite file has a directory to live in."""
    if db_url.startswith("sqlite"):
        if db_url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection so every session sees the same in-memory DB
            return create_engine(
                db_url,
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        db_path = db_url.split("sqlite:///", 1)[-1]
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        return create_engine(db_url, echo=False, connect_args={"check_same_thread": False})
    return create_engine(db_url, echo=False, pool_pre_ping=True)


class Database:
    """Owns the engine and session factory for the lifetime of the process."""

    def __init__(self, db_url: str):
        self.url = db_url
        self.engine = get_engine(db_url)
        self._factory = sessionmaker(bind=self.engine, expire_on_commit=False)

    def create_all(self) -> None:
        Base.metadata.create_all(self.engine)

    def session(self) -> Session:
        return self._factory()

    def sessions(self) -> Generator[Session, None, None]:
        """Yield a session, rolling back anything left uncommitted and closing it."""
        session = self._factory()
        try:
            yield session
        finally:
            if session.in_transaction():
                session.rollback()
            session.close()

    def close(self) -> None:
        logger.info("Disposing database engine")
        self.engine.dispose()


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """Commit everything done in the block, or roll all of it back on error."""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


def init_db(db_url: str) -> Database:
    """Open the database and create all tables."""
    database = Database(db_url)
    database.create_all()
    return database
