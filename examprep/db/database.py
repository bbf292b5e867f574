from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager

from loguru import logger
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from examprep.db.models import Base


class Database:
    """Engine and session factory for one database URL."""

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.engine: Engine = create_engine(url, echo=echo, pool_pre_ping=True)
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False, expire_on_commit=False)

    def init_db(self) -> None:
        """Create tables that do not exist yet."""
        Base.metadata.create_all(bind=self.engine)
        logger.info("Database tables initialized")

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """Provide a transactional scope around a series of operations."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:  # Intentionally broad - rollback on any error before re-raising
            session.rollback()
            raise
        finally:
            session.close()
