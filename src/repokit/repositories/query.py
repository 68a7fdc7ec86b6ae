"""Mutable query handle used by repositories and criteria.

SQLAlchemy's ``Select`` is immutable: every ``where()`` returns a new
statement. Criteria need a handle they can mutate in place, so ``Query``
wraps the current ``Select`` and rebinds it on every modifier call. All
modifiers return the handle, which keeps the fluent style:

    query.where(Organization.stars > 10).order_by(Organization.name)

Execution methods run the accumulated statement through the owning session.
A ``Query`` belongs to exactly one repository and is thrown away after a
terminal operation runs it.
"""

from collections.abc import Iterable, Sequence
from typing import Any, Generic, TypeVar

from sqlalchemy import Column, Select, func, inspect as sa_inspect, select
from sqlalchemy.orm import Session, load_only

from repokit.repositories.exceptions import RepositoryError

ModelType = TypeVar("ModelType")


def primary_key_column(model: type[Any]) -> Column[Any]:
    """Return the single primary key column of a mapped class.

    Raises:
        RepositoryError: If the model has a composite primary key
    """
    primary_key = sa_inspect(model).primary_key
    if len(primary_key) != 1:
        raise RepositoryError(
            f"{model.__name__} must have exactly one primary key column, "
            f"found {len(primary_key)}"
        )
    return primary_key[0]


class Query(Generic[ModelType]):
    """In-progress, not yet executed SELECT for one entity type."""

    def __init__(self, session: Session, model: type[ModelType]) -> None:
        self._session = session
        self._model = model
        self._statement: Select[Any] = select(model)
        self._ordered = False

    def __repr__(self) -> str:
        return f"Query({self._model.__name__}, ordered={self._ordered})"

    @property
    def model(self) -> type[ModelType]:
        return self._model

    @property
    def session(self) -> Session:
        return self._session

    @property
    def statement(self) -> Select[Any]:
        """The SELECT statement accumulated so far."""
        return self._statement

    @property
    def is_ordered(self) -> bool:
        """True once any ORDER BY has been added."""
        return self._ordered

    # ------------------------------------------------------------------
    # Modifiers
    # ------------------------------------------------------------------

    def where(self, *clauses: Any) -> "Query[ModelType]":
        self._statement = self._statement.where(*clauses)
        return self

    def filter_by(self, **values: Any) -> "Query[ModelType]":
        self._statement = self._statement.filter_by(**values)
        return self

    def order_by(self, *clauses: Any) -> "Query[ModelType]":
        self._statement = self._statement.order_by(*clauses)
        self._ordered = True
        return self

    def join(self, target: Any, *args: Any, **kwargs: Any) -> "Query[ModelType]":
        self._statement = self._statement.join(target, *args, **kwargs)
        return self

    def outerjoin(self, target: Any, *args: Any, **kwargs: Any) -> "Query[ModelType]":
        self._statement = self._statement.outerjoin(target, *args, **kwargs)
        return self

    def options(self, *options: Any) -> "Query[ModelType]":
        self._statement = self._statement.options(*options)
        return self

    def distinct(self) -> "Query[ModelType]":
        self._statement = self._statement.distinct()
        return self

    def limit(self, limit: int | None) -> "Query[ModelType]":
        self._statement = self._statement.limit(limit)
        return self

    def offset(self, offset: int | None) -> "Query[ModelType]":
        self._statement = self._statement.offset(offset)
        return self

    def for_page(self, page: int, per_page: int) -> "Query[ModelType]":
        """Narrow the query to one page of ``per_page`` rows (1-based)."""
        return self.offset((page - 1) * per_page).limit(per_page)

    def load_columns(self, columns: Sequence[str] | None) -> "Query[ModelType]":
        """Only load the named attributes; other columns load on access.

        ``None`` or ``["*"]`` leaves the query untouched.
        """
        if not columns or list(columns) == ["*"]:
            return self
        attributes = [getattr(self._model, name) for name in columns]
        return self.options(load_only(*attributes))

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def all(self) -> list[ModelType]:
        result = self._session.execute(self._statement)
        return list(result.scalars().unique().all())

    def first(self) -> ModelType | None:
        result = self._session.execute(self._statement.limit(1))
        return result.scalars().first()

    def find(self, entity_id: Any) -> ModelType | None:
        self.where(primary_key_column(self._model) == entity_id)
        return self.first()

    def find_or_fail(self, entity_id: Any) -> ModelType:
        """Fetch exactly one entity by primary key.

        Raises:
            sqlalchemy.exc.NoResultFound: If no row matches
        """
        self.where(primary_key_column(self._model) == entity_id)
        result = self._session.execute(self._statement)
        return result.scalars().unique().one()

    def find_many(self, entity_ids: Iterable[Any]) -> list[ModelType]:
        ids = list(entity_ids)
        if not ids:
            return []
        self.where(primary_key_column(self._model).in_(ids))
        return self.all()

    def count(self) -> int:
        """Count rows matched by the current filters.

        Ordering, limit and offset are dropped so the count covers every page.
        """
        counted = self._statement.order_by(None).limit(None).offset(None)
        total = self._session.scalar(
            select(func.count()).select_from(counted.subquery())
        )
        return total or 0
