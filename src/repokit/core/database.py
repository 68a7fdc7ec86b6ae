"""Database engine and session management with SQLAlchemy."""

from collections.abc import Iterator
from contextlib import contextmanager

import sqlalchemy as sa
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from repokit.core.config import settings
from repokit.core.logging import get_logger

logger = get_logger(__name__)


class DBErrorMessage:
    """Standardized database error messages."""
    CREATE_ENGINE_NO_URL = "Database URL is not configured"
    CREATE_ENGINE_MIN_DB_POOL_SIZE = "DATABASE_POOL_SIZE must be at least 1"
    CREATE_ENGINE_NEGATIVE_MAX_OVERFLOW = "DATABASE_MAX_OVERFLOW must be non-negative"
    CREATE_ENGINE_FAILED = "Failed to create database engine"

    CLOSE_DATABASE_FAILED = "Failed to close database connections"


_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def create_engine(url: str | None = None) -> Engine:
    """Create an Engine with connection pooling configuration.

    Args:
        url: Database URL. Defaults to ``settings.database_url``

    Returns:
        Engine: Configured SQLAlchemy engine

    Connection Pool Configuration:
        - pool_size: Number of connections to keep in the pool (default: 20)
        - max_overflow: Maximum overflow connections (default: 10)
        - SQLite URLs keep SQLAlchemy's default SQLite pool and ignore both

    Raises:
        ValueError: If database URL is invalid or settings are misconfigured
    """
    database_url = url if url is not None else settings.database_url
    try:
        if not database_url:
            raise ValueError(DBErrorMessage.CREATE_ENGINE_NO_URL)

        if settings.database_pool_size < 1:
            raise ValueError(DBErrorMessage.CREATE_ENGINE_MIN_DB_POOL_SIZE)

        if settings.database_max_overflow < 0:
            raise ValueError(DBErrorMessage.CREATE_ENGINE_NEGATIVE_MAX_OVERFLOW)

        logger.info(
            "Creating database engine",
            url=database_url.split("@")[1] if "@" in database_url else "***",
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
        )

        if database_url.startswith("sqlite"):
            return sa.create_engine(database_url, echo=False)

        return sa.create_engine(
            database_url,
            echo=False,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_pre_ping=True,
            pool_recycle=3600,
        )
    except ValueError:
        raise
    except Exception as e:
        logger.error(f"Failed to create database engine, due to configuration error: {e}")
        raise ValueError(DBErrorMessage.CREATE_ENGINE_FAILED) from e


def get_engine() -> Engine:
    """Return the process-wide engine, creating it on first use."""
    global _engine
    if _engine is None:
        _engine = create_engine()
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Return the session factory bound to :func:`get_engine`."""
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(
            get_engine(),
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


@contextmanager
def get_session(factory: sessionmaker[Session] | None = None) -> Iterator[Session]:
    """Provide a request-scoped session.

    Repositories are not safe to share between concurrent flows, so build
    one repository per session scope.

    Yields:
        Session: Database session, rolled back if the block raises

    Example:
        with get_session() as session:
            repo = BaseRepository(session, Organization)
            repo.create({"name": "acme"})
            repo.commit()
    """
    session = (factory or get_session_factory())()
    try:
        yield session
    except Exception as e:
        session.rollback()
        logger.error(f"Database session error occurred: {e}")
        raise
    finally:
        session.close()


def check_database_connection(engine: Engine | None = None) -> bool:
    """Check if database connection is available.

    Returns:
        bool: True if connection successful, False otherwise
    """
    try:
        with (engine or get_engine()).connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.debug("Database connection check passed")
        return True
    except Exception as e:
        logger.error(f"Database connection check failed with error: {e}")
        return False


def close_database() -> None:
    """Dispose of the process-wide engine, if one was created.

    Raises:
        RuntimeError: If the engine cannot be disposed
    """
    global _engine, _session_factory
    if _engine is None:
        return
    try:
        logger.info("Closing database connections")
        _engine.dispose()
    except Exception as e:
        logger.error(f"Error closing database connections: {e}")
        raise RuntimeError(DBErrorMessage.CLOSE_DATABASE_FAILED) from e
    finally:
        _engine = None
        _session_factory = None
