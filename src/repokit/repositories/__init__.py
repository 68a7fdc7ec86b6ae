"""Repository layer for database operations.

Repositories run CRUD operations for one model and let callers compose
criteria onto a pending query before executing it.
"""

from repokit.repositories.base import (
    BaseRepository,
    Page,
    PaginationParams,
    fill,
)
from repokit.repositories.criteria import (
    AllOf,
    CallableCriterion,
    Criterion,
    FilterBy,
    Latest,
    OnlyDeleted,
    OrderBy,
    Where,
    WithoutDeleted,
    as_criterion,
)
from repokit.repositories.exceptions import (
    ConcurrentUseError,
    InvalidCriterionError,
    InvalidEntityTypeError,
    NotFoundError,
    RepositoryError,
    StoreFailedError,
    UpdateFailedError,
)
from repokit.repositories.query import Query, primary_key_column

__all__ = [
    "AllOf",
    "BaseRepository",
    "CallableCriterion",
    "ConcurrentUseError",
    "Criterion",
    "FilterBy",
    "InvalidCriterionError",
    "InvalidEntityTypeError",
    "Latest",
    "NotFoundError",
    "OnlyDeleted",
    "OrderBy",
    "Page",
    "PaginationParams",
    "Query",
    "RepositoryError",
    "StoreFailedError",
    "UpdateFailedError",
    "Where",
    "WithoutDeleted",
    "as_criterion",
    "fill",
    "primary_key_column",
]
