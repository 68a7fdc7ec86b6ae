"""Base repository class with generic CRUD operations and criteria.

This module implements a repository that sits directly on SQLAlchemy's ORM
and lets callers compose filtering logic ("criteria") before running a
terminal operation.

Key Concepts:
- PENDING QUERY: each repository holds at most one mutable ``Query`` handle,
  built lazily on first use
- CRITERIA: ``apply_criteria()`` folds a Criterion (or an inline function)
  into the pending query and returns the repository for chaining
- TERMINAL OPERATIONS: reads and writes run the pending query once, then
  tear it down, whether they succeed or raise
- PAGINATION: page/per_page pagination with total count and navigation flags
- TRACING: @trace_database decorators integrate with OpenTelemetry

Usage Example:
    from sqlalchemy.orm import Session

    session: Session
    repo = BaseRepository(session, Organization)
    org = repo.create({"name": "My Org"})
    popular = (
        repo.apply_criteria(Where(Organization.stars > 100))
        .apply_criteria(lambda q: q.order_by(Organization.name))
        .get_many()
    )
    page = repo.apply_criteria(WithoutDeleted()).paginate(page=2, per_page=10)
    repo.commit()

A repository is not safe to share between concurrent flows: build one per
request or unit of work.
"""

import functools
import math
import threading
from collections.abc import Iterable, Iterator, Mapping, Sequence
from typing import Any, Callable, Generic, Optional, TypeVar

from sqlalchemy import delete as sa_delete, inspect as sa_inspect
from sqlalchemy.exc import NoResultFound, SQLAlchemyError
from sqlalchemy.orm import Session

from repokit.core.config import settings
from repokit.core.logging import get_logger
from repokit.core.tracing import trace_database
from repokit.repositories.criteria import Criterion, CriterionFunc, as_criterion
from repokit.repositories.exceptions import (
    ConcurrentUseError,
    InvalidEntityTypeError,
    NotFoundError,
    RepositoryError,
    StoreFailedError,
    UpdateFailedError,
)
from repokit.repositories.query import Query, primary_key_column

ModelType = TypeVar("ModelType")

logger = get_logger(__name__)


# ============================================================================
# PAGINATION SUPPORT
# ============================================================================


class PaginationParams:
    """Page-based pagination parameters.

    Attributes:
        page: 1-based page number (default: 1)
        per_page: Rows per page, or None for the repository default.
            Capped at ``settings.max_page_size``.

    Raises:
        ValueError: If page is below 1 or per_page is out of range
    """

    def __init__(self, page: int = 1, per_page: int | None = None) -> None:
        if page < 1:
            raise ValueError("Page must be at least 1")
        if per_page is not None and (per_page <= 0 or per_page > settings.max_page_size):
            raise ValueError(f"Per page must be between 1 and {settings.max_page_size}")

        self.page = page
        self.per_page = per_page


class Page(Generic[ModelType]):
    """One page of results plus the metadata to navigate between pages.

    Attributes:
        items: Entities in this page, in query order
        total: Count of all entities matched by the query (across pages)
        per_page: Page size used for this query
        page: 1-based page number
        last_page: Number of the last page (at least 1)
        has_next: True if a page exists after this one
        has_prev: True if a page exists before this one

    Example:
        page = repo.paginate(page=1, per_page=20)
        for org in page:
            print(org.name)
        if page.has_next:
            page = repo.paginate(page=page.page + 1, per_page=20)
    """

    def __init__(
        self,
        items: list[ModelType],
        total: int,
        per_page: int,
        page: int
    ) -> None:
        self.items = items
        self.total = total
        self.per_page = per_page
        self.page = page
        self.last_page = max(math.ceil(total / per_page), 1)
        self.has_next = page < self.last_page
        self.has_prev = page > 1

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page

    def __iter__(self) -> Iterator[ModelType]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def __repr__(self) -> str:
        return (
            f"Page(page={self.page}, per_page={self.per_page}, "
            f"total={self.total}, items={len(self.items)})"
        )


def fill(entity: Any, attributes: Mapping[str, Any]) -> Any:
    """Set attributes on an entity from a mapping.

    Follows the rule of SQLAlchemy's declarative constructor: every key must
    be an attribute of the entity's class.

    Raises:
        TypeError: If a key is not an attribute of the entity class
    """
    cls = type(entity)
    for key, value in attributes.items():
        if not hasattr(cls, key):
            raise TypeError(f"{key!r} is an invalid keyword argument for {cls.__name__}")
        setattr(entity, key, value)
    return entity


F = TypeVar("F", bound=Callable[..., Any])


def releases_query(func: F) -> F:
    """Discard the pending query when a terminal operation returns or raises.

    Covers failures that happen before the query runs (argument validation,
    entity construction). A handle owned by another thread is left alone.
    """

    @functools.wraps(func)
    def wrapper(self: "BaseRepository[Any]", *args: Any, **kwargs: Any) -> Any:
        try:
            return func(self, *args, **kwargs)
        finally:
            if self._query_owner in (None, threading.get_ident()):
                self.destroy_query()

    return wrapper  # type: ignore[return-value]


# ============================================================================
# BASE REPOSITORY
# ============================================================================


class BaseRepository(Generic[ModelType]):
    """Generic repository with criteria support for any SQLAlchemy model.

    Args:
        session: Session for database communication
        model: Mapped model class (e.g., Organization)
        factory: Callable returning a new, empty entity. Defaults to ``model``
        default_page_size: Page size when none is given (default: settings).
            Must be between 1 and ``settings.max_page_size``
        result_transform: Called once with the normalized result of every
            read operation; its return value is what the caller receives

    Subclassing:
        class OrganizationRepository(BaseRepository[Organization]):
            def __init__(self, session: Session) -> None:
                super().__init__(session, Organization)

            def popular(self, min_stars: int) -> list[Organization]:
                return self.apply_criteria(MinimumStars(min_stars)).get_many()
    """

    def __init__(
        self,
        session: Session,
        model: type[ModelType],
        factory: Optional[Callable[[], ModelType]] = None,
        default_page_size: int | None = None,
        result_transform: Optional[Callable[[Any], Any]] = None,
    ) -> None:
        if not isinstance(model, type) or sa_inspect(model, raiseerr=False) is None:
            raise InvalidEntityTypeError(f"{model!r} is not a mapped entity class")

        self._session = session
        self._model = model
        self._factory: Callable[[], ModelType] = factory or model
        if default_page_size is None:
            default_page_size = settings.default_page_size
        elif not 1 <= default_page_size <= settings.max_page_size:
            raise ValueError(
                f"Default page size must be between 1 and {settings.max_page_size}"
            )
        self.default_page_size = default_page_size
        self._result_transform = result_transform
        self._query: Query[ModelType] | None = None
        self._query_owner: int | None = None
        self._logger = get_logger(f"{__name__}.{model.__name__}Repository")

    @property
    def model(self) -> type[ModelType]:
        return self._model

    @property
    def session(self) -> Session:
        return self._session

    # ========================================================================
    # QUERY LIFECYCLE
    # ========================================================================

    @property
    def has_pending_query(self) -> bool:
        """True while a query handle is live (criteria may be attached)."""
        return self._query is not None

    def new_query(self) -> Query[ModelType]:
        """Build a fresh, unfiltered query for the model."""
        return Query(self._session, self._model)

    def get_query(self) -> Query[ModelType]:
        """Return the pending query, creating it if there is none.

        Raises:
            ConcurrentUseError: If the pending query was started by another thread
        """
        current = threading.get_ident()
        if self._query is None:
            self._query = self.new_query()
            self._query_owner = current
        elif self._query_owner != current:
            raise ConcurrentUseError(
                f"{self._model.__name__} repository has a pending query owned by "
                f"another thread; use one repository per request"
            )
        return self._query

    def destroy_query(self) -> None:
        """Discard the pending query and every criterion applied to it."""
        self._query = None
        self._query_owner = None

    def apply_criteria(self, criterion: Criterion | CriterionFunc) -> "BaseRepository[ModelType]":
        """Fold a criterion into the pending query.

        Args:
            criterion: Criterion instance, or a callable taking the query

        Returns:
            This repository, so calls can be chained

        Raises:
            InvalidCriterionError: If ``criterion`` is neither form. The
                pending query is left untouched
        """
        resolved = as_criterion(criterion)
        query = self.get_query()

        self._logger.debug(
            "Applying criterion",
            model=self._model.__name__,
            criterion=repr(resolved)
        )
        resolved.apply(query)
        return self

    def _execute(self, operation: str, fetch: Callable[[Query[ModelType]], Any]) -> Any:
        """Run ``fetch`` against the pending query, then tear the query down.

        Generic SQLAlchemy failures are wrapped in RepositoryError; errors the
        fetch raises itself (RepositoryError subclasses) pass through.
        """
        query = self.get_query()
        try:
            results = fetch(query)
        except SQLAlchemyError as e:
            self._logger.error(
                f"Failed to {operation}",
                model=self._model.__name__,
                error=str(e)
            )
            raise RepositoryError(f"Failed to {operation}: {e}") from e
        finally:
            self.destroy_query()

        return self._return_results(results)

    def _return_results(self, results: Any) -> Any:
        if self._result_transform is None:
            return results
        return self._result_transform(results)

    # ========================================================================
    # ENTITY CONSTRUCTION
    # ========================================================================

    def new_model(self) -> ModelType:
        """Make a new, empty entity through the factory.

        Raises:
            InvalidEntityTypeError: If the factory result is not a mapped
                instance of the repository's model
        """
        entity = self._factory()
        if not isinstance(entity, self._model) or sa_inspect(entity, raiseerr=False) is None:
            raise InvalidEntityTypeError(
                f"Factory for {self._model.__name__} produced "
                f"{type(entity).__name__}, which is not a mapped {self._model.__name__}"
            )
        return entity

    def _ensure_entity(self, entity: Any) -> None:
        if not isinstance(entity, self._model):
            raise InvalidEntityTypeError(
                f"Expected {self._model.__name__}, got {type(entity).__name__}"
            )

    # ========================================================================
    # READ OPERATIONS
    # ========================================================================

    @trace_database()
    @releases_query
    def get_many(
        self,
        columns: Sequence[str] | None = None,
        paginated: bool = False,
        per_page: int | None = None,
    ) -> list[ModelType] | Page[ModelType]:
        """Get every entity matched by the pending criteria.

        Args:
            columns: Attribute names to load eagerly, None for all
            paginated: Return the first page instead of a list
            per_page: Page size when paginated

        Returns:
            List of entities, or a Page when ``paginated`` is True
        """
        if paginated:
            return self.get_many_paginated(per_page=per_page, columns=columns)

        self._logger.debug("Getting entities", model=self._model.__name__)
        return self._execute(
            "get entities",
            lambda query: query.load_columns(columns).all(),
        )

    @trace_database()
    @releases_query
    def get_many_paginated(
        self,
        per_page: int | None = None,
        columns: Sequence[str] | None = None,
        page: int = 1,
    ) -> Page[ModelType]:
        """Get one page of entities matched by the pending criteria."""
        return self.paginate(page=page, per_page=per_page, columns=columns)

    @trace_database()
    @releases_query
    def get_by_id(self, entity_id: Any, columns: Sequence[str] | None = None) -> ModelType:
        """Get a single entity by primary key.

        Pending criteria still apply, so an entity filtered out by them is
        reported as not found.

        Raises:
            NotFoundError: If no entity matches
            RepositoryError: For other database errors
        """
        self._logger.debug(
            "Getting entity by ID",
            model=self._model.__name__,
            entity_id=entity_id
        )

        def fetch(query: Query[ModelType]) -> ModelType:
            try:
                return query.load_columns(columns).find_or_fail(entity_id)
            except NoResultFound as e:
                self._logger.debug(
                    "Entity not found",
                    model=self._model.__name__,
                    entity_id=entity_id
                )
                raise NotFoundError(
                    f"{self._model.__name__} with id {entity_id} not found"
                ) from e

        return self._execute("get entity", fetch)

    @trace_database()
    @releases_query
    def get_many_by_ids(
        self,
        entity_ids: Iterable[Any],
        columns: Sequence[str] | None = None,
    ) -> list[ModelType]:
        """Get the entities whose primary key is in ``entity_ids``.

        Missing ids are skipped; results follow the query's order.
        """
        ids = list(entity_ids)
        self._logger.debug(
            "Getting entities by IDs",
            model=self._model.__name__,
            count=len(ids)
        )
        return self._execute(
            "get entities by ids",
            lambda query: query.load_columns(columns).find_many(ids),
        )

    @trace_database()
    @releases_query
    def paginate(
        self,
        page: int = 1,
        per_page: int | None = None,
        columns: Sequence[str] | None = None,
    ) -> Page[ModelType]:
        """Count the filtered query, then fetch one page of it.

        Without an ORDER BY from the criteria, rows are ordered by primary
        key so consecutive pages do not overlap.

        Args:
            page: 1-based page number
            per_page: Page size, ``default_page_size`` when None
            columns: Attribute names to load eagerly, None for all

        Raises:
            ValueError: If page or per_page is out of range
            RepositoryError: For database errors
        """
        params = PaginationParams(page=page, per_page=per_page)
        size = params.per_page or self.default_page_size

        self._logger.debug(
            "Paginating entities",
            model=self._model.__name__,
            page=params.page,
            per_page=size
        )

        def fetch(query: Query[ModelType]) -> Page[ModelType]:
            total = query.count()
            if not query.is_ordered:
                query.order_by(primary_key_column(self._model))
            items = query.load_columns(columns).for_page(params.page, size).all()
            return Page(items=items, total=total, per_page=size, page=params.page)

        return self._execute("paginate entities", fetch)

    @trace_database()
    @releases_query
    def count(self) -> int:
        """Count the entities matched by the pending criteria."""
        return self._execute("count entities", lambda query: query.count())

    # ========================================================================
    # WRITE OPERATIONS
    # ========================================================================

    @trace_database()
    @releases_query
    def create(self, attributes: Mapping[str, Any] | None = None) -> ModelType:
        """Build a new entity from ``attributes`` and persist it.

        Returns:
            The persisted entity with generated fields (id, defaults) loaded

        Raises:
            TypeError: If an attribute is unknown to the model
            InvalidEntityTypeError: If the factory produced the wrong type
            StoreFailedError: If persisting fails
        """
        entity = self.new_model()
        fill(entity, attributes or {})
        return self.save(entity)

    @trace_database()
    @releases_query
    def save(self, entity: ModelType) -> ModelType:
        """Persist an entity (insert or update) and flush it.

        Raises:
            StoreFailedError: If the flush fails
        """
        try:
            self._ensure_entity(entity)
            self._logger.debug("Saving entity", model=self._model.__name__)

            self._session.add(entity)
            self._session.flush()
            self._session.refresh(entity)
        except SQLAlchemyError as e:
            self._logger.error(
                "Failed to store entity",
                model=self._model.__name__,
                error=str(e)
            )
            raise StoreFailedError(f"Failed to store {self._model.__name__}: {e}") from e
        finally:
            self.destroy_query()

        self._logger.info(
            "Entity stored successfully",
            model=self._model.__name__,
            entity_id=getattr(entity, "id", None)
        )
        return entity

    @trace_database()
    @releases_query
    def save_many(self, entities: Sequence[ModelType]) -> list[ModelType]:
        """Save entities in order, stopping at the first failure.

        Raises:
            StoreFailedError: From the first entity that fails; later
                entities are not processed
        """
        return [self.save(entity) for entity in entities]

    @trace_database()
    @releases_query
    def update(self, entity: ModelType, attributes: Mapping[str, Any]) -> ModelType:
        """Apply ``attributes`` to a persisted entity and flush.

        Raises:
            TypeError: If an attribute is unknown to the model
            UpdateFailedError: If the entity was never persisted, is deleted,
                or the flush fails
        """
        try:
            self._ensure_entity(entity)
            state = sa_inspect(entity)
            if state.transient or state.deleted or state.was_deleted:
                raise UpdateFailedError(
                    f"Cannot update {self._model.__name__}: entity is not persisted"
                )

            self._logger.debug(
                "Updating entity",
                model=self._model.__name__,
                entity_id=getattr(entity, "id", None),
                fields=list(attributes.keys())
            )

            fill(entity, attributes)
            self._session.add(entity)
            self._session.flush()
            self._session.refresh(entity)
        except SQLAlchemyError as e:
            self._logger.error(
                "Failed to update entity",
                model=self._model.__name__,
                error=str(e)
            )
            raise UpdateFailedError(f"Failed to update {self._model.__name__}: {e}") from e
        finally:
            self.destroy_query()

        self._logger.info(
            "Entity updated successfully",
            model=self._model.__name__,
            entity_id=getattr(entity, "id", None)
        )
        return entity

    @trace_database()
    @releases_query
    def update_by_id(self, entity_id: Any, attributes: Mapping[str, Any]) -> ModelType:
        """Find an entity by primary key (respecting pending criteria) and update it.

        Raises:
            NotFoundError: If no entity matches
            UpdateFailedError: If the update fails
        """
        entity = self.get_by_id(entity_id)
        return self.update(entity, attributes)

    @trace_database()
    @releases_query
    def delete(self, entity: ModelType) -> bool:
        """Delete an entity and flush.

        Returns:
            True if the entity was deleted, False if it was never persisted

        Raises:
            RepositoryError: For database errors
        """
        try:
            self._ensure_entity(entity)
            state = sa_inspect(entity)
            if state.transient or state.pending:
                if state.pending:
                    self._session.expunge(entity)
                self._logger.debug(
                    "Entity not persisted, nothing to delete",
                    model=self._model.__name__
                )
                return False

            self._session.delete(entity)
            self._session.flush()
        except SQLAlchemyError as e:
            self._logger.error(
                "Failed to delete entity",
                model=self._model.__name__,
                error=str(e)
            )
            raise RepositoryError(f"Failed to delete entity: {e}") from e
        finally:
            self.destroy_query()

        self._logger.info(
            "Entity deleted successfully",
            model=self._model.__name__,
            entity_id=getattr(entity, "id", None)
        )
        return True

    @trace_database()
    @releases_query
    def delete_many(self, entities: Sequence[ModelType]) -> list[bool]:
        """Delete entities in order, stopping at the first failure."""
        return [self.delete(entity) for entity in entities]

    @trace_database()
    @releases_query
    def delete_by_id(self, entity_id: Any) -> int:
        """Bulk delete by primary key (one id or an iterable of ids).

        Pending criteria are not applied to the delete; they are discarded.
        Strings and bytes count as a single id.

        Returns:
            Number of rows deleted
        """
        if isinstance(entity_id, Iterable) and not isinstance(entity_id, (str, bytes)):
            ids = list(entity_id)
        else:
            ids = [entity_id]

        self.destroy_query()
        if not ids:
            return 0

        try:
            self._logger.debug(
                "Deleting entities by ID",
                model=self._model.__name__,
                count=len(ids)
            )
            statement = sa_delete(self._model).where(primary_key_column(self._model).in_(ids))
            result = self._session.execute(statement)
            deleted = int(getattr(result, "rowcount", 0) or 0)
        except SQLAlchemyError as e:
            self._logger.error(
                "Failed to delete entities by ID",
                model=self._model.__name__,
                error=str(e)
            )
            raise RepositoryError(f"Failed to delete entities: {e}") from e

        self._logger.info(
            "Entities deleted by ID",
            model=self._model.__name__,
            deleted=deleted
        )
        return deleted

    # ========================================================================
    # TRANSACTION MANAGEMENT
    # ========================================================================

    def commit(self) -> None:
        """Commit the current transaction.

        Raises:
            RepositoryError: If commit fails
        """
        try:
            self._session.commit()
            self._logger.debug("Transaction committed", model=self._model.__name__)
        except SQLAlchemyError as e:
            self._logger.error(
                "Failed to commit transaction",
                model=self._model.__name__,
                error=str(e)
            )
            raise RepositoryError(f"Failed to commit transaction: {e}") from e

    def rollback(self) -> None:
        """Rollback the current transaction.

        Raises:
            RepositoryError: If rollback fails
        """
        try:
            self._session.rollback()
            self._logger.debug("Transaction rolled back", model=self._model.__name__)
        except SQLAlchemyError as e:
            self._logger.error(
                "Failed to rollback transaction",
                model=self._model.__name__,
                error=str(e)
            )
            raise RepositoryError(f"Failed to rollback transaction: {e}") from e
