"""Exception hierarchy for repository operations.

Applications should catch these to implement appropriate error responses.
Every error raised by a repository is a ``RepositoryError``; errors coming
from SQLAlchemy are chained as ``__cause__``.
"""


class RepositoryError(Exception):
    """Base exception for all repository operations.

    Example:
        try:
            org = repo.create({"name": "Test"})
        except RepositoryError as e:
            logger.error(f"Database operation failed: {e}")
    """
    pass


class InvalidCriterionError(RepositoryError):
    """Raised when apply_criteria() receives something that is neither a
    Criterion instance nor a callable taking the query handle."""
    pass


class NotFoundError(RepositoryError):
    """Raised when a lookup by identity finds no matching row.

    Example:
        try:
            org = repo.get_by_id(org_id)
        except NotFoundError:
            raise HTTPException(status_code=404, detail="Organization not found")
    """
    pass


class StoreFailedError(RepositoryError):
    """Raised when persisting a new or changed entity fails."""
    pass


class UpdateFailedError(RepositoryError):
    """Raised when updating an entity fails, including updates of entities
    that were never persisted or were already deleted."""
    pass


class InvalidEntityTypeError(RepositoryError):
    """Raised when a model or factory does not produce a mapped entity of
    the repository's type."""
    pass


class ConcurrentUseError(RepositoryError):
    """Raised when a repository's pending query is touched from a thread
    other than the one that started it."""
    pass
