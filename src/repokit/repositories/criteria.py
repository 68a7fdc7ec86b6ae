"""Criteria: reusable units of query mutation.

A criterion takes the repository's pending ``Query`` and mutates it in
place. Two forms are accepted by ``BaseRepository.apply_criteria``:

- a ``Criterion`` instance (named, reusable)
- a plain callable taking the query, e.g. ``lambda q: q.where(...)``

Callables are wrapped in ``CallableCriterion`` so the repository only ever
deals with ``Criterion.apply``.

Example:
    class MinimumStars(Criterion):
        def __init__(self, stars: int) -> None:
            self.stars = stars

        def apply(self, query: Query[Any]) -> None:
            query.where(Organization.stars >= self.stars)

    repo.apply_criteria(MinimumStars(100)).apply_criteria(Latest()).get_many()
"""

from abc import ABC, abstractmethod
from typing import Any, Callable

from repokit.repositories.exceptions import InvalidCriterionError
from repokit.repositories.query import Query

CriterionFunc = Callable[[Query[Any]], Any]


class Criterion(ABC):
    """Named, reusable filter applied to a query handle."""

    @abstractmethod
    def apply(self, query: Query[Any]) -> None:
        """Mutate ``query`` in place. The return value is ignored."""

    def __and__(self, other: "Criterion | CriterionFunc") -> "AllOf":
        return AllOf(self, other)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class CallableCriterion(Criterion):
    """Adapter turning an inline function into a Criterion."""

    def __init__(self, func: CriterionFunc) -> None:
        self.func = func

    def apply(self, query: Query[Any]) -> None:
        self.func(query)

    def __repr__(self) -> str:
        name = getattr(self.func, "__qualname__", repr(self.func))
        return f"CallableCriterion({name})"


def as_criterion(value: Any) -> Criterion:
    """Normalize a criterion or inline function into a Criterion.

    Classes are rejected even though they are callable: passing
    ``WithoutDeleted`` instead of ``WithoutDeleted()`` is a mistake.

    Raises:
        InvalidCriterionError: If ``value`` is neither form
    """
    if isinstance(value, Criterion):
        return value
    if callable(value) and not isinstance(value, type):
        return CallableCriterion(value)
    raise InvalidCriterionError(
        f"invalid criterion type: expected {Criterion.__name__} or a callable "
        f"taking the query, got {type(value).__name__}"
    )


class AllOf(Criterion):
    """Apply several criteria in order as one."""

    def __init__(self, *criteria: Criterion | CriterionFunc) -> None:
        self.criteria = [as_criterion(criterion) for criterion in criteria]

    def apply(self, query: Query[Any]) -> None:
        for criterion in self.criteria:
            criterion.apply(query)

    def __and__(self, other: Criterion | CriterionFunc) -> "AllOf":
        return AllOf(*self.criteria, other)

    def __repr__(self) -> str:
        return f"AllOf({', '.join(repr(c) for c in self.criteria)})"


class Where(Criterion):
    """Add SQL expressions to the WHERE clause."""

    def __init__(self, *clauses: Any) -> None:
        self.clauses = clauses

    def apply(self, query: Query[Any]) -> None:
        query.where(*self.clauses)


class FilterBy(Criterion):
    """Equality filters by attribute name: ``FilterBy(name="acme")``."""

    def __init__(self, **values: Any) -> None:
        self.values = values

    def apply(self, query: Query[Any]) -> None:
        query.filter_by(**self.values)

    def __repr__(self) -> str:
        return f"FilterBy({self.values!r})"


class OrderBy(Criterion):
    """Add ORDER BY expressions."""

    def __init__(self, *clauses: Any) -> None:
        self.clauses = clauses

    def apply(self, query: Query[Any]) -> None:
        query.order_by(*self.clauses)


class Latest(Criterion):
    """Newest first, by ``created_at`` unless another column is named."""

    def __init__(self, column: str = "created_at") -> None:
        self.column = column

    def apply(self, query: Query[Any]) -> None:
        query.order_by(getattr(query.model, self.column).desc())


class WithoutDeleted(Criterion):
    """Hide soft-deleted rows (``deleted_at IS NULL``)."""

    def apply(self, query: Query[Any]) -> None:
        query.where(getattr(query.model, "deleted_at").is_(None))


class OnlyDeleted(Criterion):
    """Only soft-deleted rows (``deleted_at IS NOT NULL``)."""

    def apply(self, query: Query[Any]) -> None:
        query.where(getattr(query.model, "deleted_at").is_not(None))
