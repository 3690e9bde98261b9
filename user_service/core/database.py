"""
Database configuration and session management.

This module provides the SQLAlchemy engine, session factory and transaction
handling. The engine is created lazily from the settings so that importing the
package never opens a connection or loads a database driver.
"""

import logging
from contextlib import contextmanager
from functools import lru_cache
from typing import Generator, Optional

from fastapi import Request
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base, Session
from sqlalchemy.exc import SQLAlchemyError

from .config import Settings, settings

logger = logging.getLogger(__name__)

# Create Base class for declarative models
Base = declarative_base()


def build_engine(url: str, echo: bool = False) -> Engine:
    """
    Create a SQLAlchemy engine with settings suited to the backend.

    Args:
        url: SQLAlchemy database URL
        echo: Log every SQL statement

    Returns:
        Engine: Configured engine
    """
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},  # Required for SQLite
            echo=echo
        )
    return create_engine(
        url,
        pool_pre_ping=True,  # Enable automatic reconnection
        pool_size=10,
        max_overflow=20,
        pool_timeout=30,  # Connection timeout in seconds
        pool_recycle=1800,  # Recycle connections after 30 minutes
        echo=echo,
        isolation_level="REPEATABLE READ"
    )


@lru_cache()
def _engine_for(url: str, echo: bool) -> Engine:
    return build_engine(url, echo=echo)


@lru_cache()
def _session_factory_for(url: str, echo: bool) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=_engine_for(url, echo),
        expire_on_commit=False  # Prevent expired object access after commit
    )


def get_engine(config: Optional[Settings] = None) -> Engine:
    """
    Get the engine for ``config``, the environment settings by default.

    Engines are shared by every caller using the same database URL.
    """
    config = config or settings
    return _engine_for(config.database_url, config.DB_ECHO)


def get_session_factory(config: Optional[Settings] = None) -> sessionmaker:
    """Get the session factory bound to the engine for ``config``."""
    config = config or settings
    return _session_factory_for(config.database_url, config.DB_ECHO)


def init_db(engine: Engine) -> None:
    """Create all tables that do not exist yet."""
    # Models must be imported so that their tables are registered on Base
    from user_service.models import user  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ensured")


# PUBLIC_INTERFACE
@contextmanager
def transaction_context(db: Session) -> Generator[Session, None, None]:
    """
    Commit the work done inside the block, roll it back on any error.

    Args:
        db: Database session

    Yields:
        Session: The active database session

    Raises:
        SQLAlchemyError: If any database operation fails
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


@contextmanager
def session_scope(config: Optional[Settings] = None) -> Generator[Session, None, None]:
    """
    Open a session for one unit of work outside of a request.

    Args:
        config: Settings naming the database, the environment ones by default

    Yields:
        Session: Database session, closed on exit
    """
    db = get_session_factory(config)()
    try:
        yield db
    finally:
        db.close()


def get_db(request: Request) -> Generator[Session, None, None]:
    """
    Get database session with automatic cleanup.

    Yields:
        Session: Database session on the application's configured database

    Note:
        This function should be used as a FastAPI dependency.
        The session is automatically closed after the request is completed.
    """
    db = get_session_factory(getattr(request.app.state, "settings", None))()
    try:
        yield db
    finally:
        db.close()


def check_database_health(db: Session) -> bool:
    """
    Check database connection health.

    Returns:
        bool: True if a trivial query succeeds, False otherwise
    """
    try:
        db.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        return False
