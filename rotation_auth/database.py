"""
Database configuration and session management for the Rotation Auth service.

This module provides SQLAlchemy setup for the user credential store, session
management, and database initialization functionality.
"""
from contextlib import contextmanager
from typing import Any, Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from rotation_auth.config import settings

# Create SQLAlchemy base class for models
Base = declarative_base()


def _is_memory_sqlite(db_url: str) -> bool:
    return db_url in ("sqlite://", "sqlite:///:memory:")


class Database:
    """Database connection and session management."""

    def __init__(self, db_url: Optional[str] = None, echo: Optional[bool] = None):
        """
        Initialize the database connection.

        Args:
            db_url: Database URL. If None, uses the URL from settings.
            echo: Whether to log SQL statements. If None, uses settings.
        """
        if db_url is None:
            db_url = settings.DATABASE_URL
        if echo is None:
            echo = settings.DATABASE_ECHO

        engine_kwargs = {}
        if db_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            # An in-memory database lives in one connection; share it
            if _is_memory_sqlite(db_url):
                engine_kwargs["poolclass"] = StaticPool

        self.engine = create_engine(db_url, echo=echo, **engine_kwargs)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def create_all(self) -> None:
        """Create all tables defined in the models."""
        Base.metadata.create_all(bind=self.engine)

    def drop_all(self) -> None:
        """Drop all tables. Use with caution, primarily for testing."""
        Base.metadata.drop_all(bind=self.engine)

    def get_session(self) -> Session:
        """
        Get a new database session.

        Returns:
            A new SQLAlchemy session.
        """
        return self.SessionLocal()

    @contextmanager
    def session_scope(self) -> Generator[Session, Any, None]:
        """
        Context manager for database sessions.

        Provides automatic commit/rollback and session closing.

        Yields:
            An active SQLAlchemy session.
        """
        session = self.get_session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


# Default database instance, created on first use
db: Optional[Database] = None


# PUBLIC_INTERFACE
def init_db(db_url: Optional[str] = None) -> Database:
    """
    Initialize the database with all required tables.

    Args:
        db_url: Optional database URL. If None, uses the URL from settings.

    Returns:
        The initialized default Database.
    """
    global db
    # Register the mapped classes before creating tables
    from rotation_auth import models  # noqa: F401

    db = Database(db_url)
    db.create_all()
    return db


# PUBLIC_INTERFACE
def get_database() -> Database:
    """
    Get the default database, initializing it from settings if needed.

    Returns:
        The default Database.
    """
    if db is None:
        return init_db()
    return db

