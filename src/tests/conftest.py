"""Shared pytest fixtures for test suite."""

import os
from collections.abc import Generator
from unittest.mock import MagicMock

# Set test environment variables BEFORE any repokit imports
# so settings, logging and tracing pick them up at module load
os.environ["ENVIRONMENT"] = "testing"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["OTEL_ENABLED"] = "false"

import pytest
from sqlalchemy import Engine, create_engine, text
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from repokit.core.config import Settings
from repokit.models.base import Base
from repokit.repositories.base import BaseRepository
from tests.models import Organization


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Get settings configured for testing.

    Returns:
        Settings: Test environment settings
    """
    return Settings(
        environment="testing",
        log_level="WARNING",
    )


# ===== Database Fixtures =====


@pytest.fixture
def test_engine() -> Generator[Engine, None, None]:
    """Create a fresh in-memory SQLite engine per test.

    StaticPool keeps the single in-memory connection alive for the whole
    test, so every session sees the same tables.

    Yields:
        Engine: Test database engine with all tables created
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    yield engine

    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def test_session(test_engine: Engine) -> Generator[Session, None, None]:
    """Create a database session that is rolled back after the test.

    Args:
        test_engine: Test database engine

    Yields:
        Session: Clean database session for testing
    """
    session = Session(test_engine, expire_on_commit=False, autoflush=False)
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def db_session(test_session: Session) -> Session:
    """Alias for test_session to match common naming convention."""
    return test_session


@pytest.fixture
def verify_test_database(test_engine: Engine) -> bool:
    """Verify test database connection is available.

    Raises:
        RuntimeError: If database connection fails
    """
    try:
        with test_engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        raise RuntimeError(f"Test database connection failed: {e}") from e


# ===== Repository Fixtures =====


@pytest.fixture
def mock_session() -> MagicMock:
    """Create a mock session."""
    return MagicMock(spec=Session)


@pytest.fixture
def org_repo(db_session: Session) -> BaseRepository[Organization]:
    """Organization repository backed by the SQLite test session."""
    return BaseRepository(db_session, Organization)
