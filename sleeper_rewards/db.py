# sleeper_rewards/db.py
"""Engine and transactional session handling for the rewards database"""

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from sleeper_rewards.models.db import Base
from sleeper_rewards.db_config import DatabaseManager

logger = logging.getLogger(__name__)

IN_MEMORY_URLS = ('sqlite://', 'sqlite:///:memory:')


def build_engine(url: str) -> Engine:
    """Engine options per backend; in-memory SQLite shares one connection across threads"""
    if url in IN_MEMORY_URLS:
        return create_engine(url, connect_args={'check_same_thread': False}, poolclass=StaticPool)
    if url.startswith('sqlite'):
        return create_engine(url, connect_args={'check_same_thread': False})
    return create_engine(url, pool_pre_ping=True)


class Database:
    """Owns the engine and hands out sessions"""

    def __init__(self):
        self._engine: Optional[Engine] = None
        self._SessionLocal = None

    @property
    def initialized(self) -> bool:
        return self._SessionLocal is not None

    def _get_connection_string(self) -> str:
        """
        Resolve the connection string from settings.

        Raises:
            ValueError: If neither DATABASE_URL nor DB_PASSWORD is configured
        """
        try:
            return DatabaseManager.initialize_from_env()
        except ValueError as e:
            logger.error(f"Failed to initialize database connection: {e}")
            raise

    def init(self, connection_string: Optional[str] = None) -> None:
        """
        Connect and create missing tables. Call once at startup.

        Args:
            connection_string: Explicit SQLAlchemy URL; resolved from settings when omitted

        Raises:
            SQLAlchemyError: If the engine cannot be created or tables cannot be created
        """
        try:
            self._engine = build_engine(connection_string or self._get_connection_string())
            Base.metadata.create_all(self._engine)
            # Rows stay readable after commit; services return them to callers
            self._SessionLocal = sessionmaker(bind=self._engine, expire_on_commit=False)
            logger.info("Database initialized successfully")

        except SQLAlchemyError as e:
            logger.error(f"Database initialization failed: {e}")
            raise

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """
        One transaction: commit when the block exits cleanly, roll back and
        re-raise on any exception.

        Usage:
            with db.session() as session:
                session.add(row)

        Raises:
            RuntimeError: If init() has not been called
        """
        if not self._SessionLocal:
            raise RuntimeError("Database not initialized. Call init() first.")

        session = self._SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        """Close pooled connections; init() must be called again before reuse"""
        if self._engine:
            self._engine.dispose()
            self._engine = None
            self._SessionLocal = None


# Global database instance
db = Database()
