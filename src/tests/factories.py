"""Model factory functions for testing.

Each factory accepts optional kwargs to override defaults and an optional
db_session to persist the instance (flush only, no commit).

Example:
    # Create unsaved instance
    org = create_organization(name="Acme Corp")

    # Create and flush to the database
    org = create_organization(db_session=session, name="Acme Corp")
"""

from typing import Any

from sqlalchemy.orm import Session

from tests.models import Organization, Package


def create_organization(
    db_session: Session | None = None,
    **kwargs: Any,
) -> Organization:
    """Create an Organization instance for testing."""
    defaults = {
        "name": "test-org",
        "description": "A test organization",
        "stars": 0,
    }
    defaults.update(kwargs)

    org = Organization(**defaults)

    if db_session:
        db_session.add(org)
        db_session.flush()

    return org


def create_organizations(
    db_session: Session,
    count: int,
    **kwargs: Any,
) -> list[Organization]:
    """Create and flush ``count`` organizations named org-01, org-02, ...

    Insertion order matches primary key order.
    """
    return [
        create_organization(db_session, name=f"org-{i:02d}", **kwargs)
        for i in range(1, count + 1)
    ]


def create_package(
    db_session: Session | None = None,
    **kwargs: Any,
) -> Package:
    """Create a Package instance for testing."""
    defaults = {
        "name": "test-package",
        "ecosystem": "pypi",
    }
    defaults.update(kwargs)

    package = Package(**defaults)

    if db_session:
        db_session.add(package)
        db_session.flush()

    return package
