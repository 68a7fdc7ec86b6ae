"""Declarative base and mixins for repository-managed models.

Repositories work with any mapped class; these are conveniences. The
``created_at`` and ``deleted_at`` columns added here are the ones the
``Latest``, ``WithoutDeleted`` and ``OnlyDeleted`` criteria look for.
"""

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import DateTime, func, inspect as sa_inspect
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column


class Base(DeclarativeBase):
    """Declarative base with a primary-key based ``__repr__``."""

    def __repr__(self) -> str:
        identity = sa_inspect(self).identity
        key = identity[0] if identity and len(identity) == 1 else identity
        return f"{type(self).__name__}(id={key!r})"


class TimestampMixin:
    """created_at / updated_at columns maintained by the database."""

    @declared_attr
    def created_at(cls) -> Mapped[datetime]:
        return mapped_column(
            DateTime(timezone=True),
            nullable=False,
            server_default=func.now(),
        )

    @declared_attr
    def updated_at(cls) -> Mapped[datetime]:
        return mapped_column(
            DateTime(timezone=True),
            nullable=False,
            server_default=func.now(),
            onupdate=func.now(),
        )


class SoftDeleteMixin:
    """deleted_at timestamp; None while the row is live.

    Marking a row only changes the attribute. Persist it with
    ``repo.save(entity)``.
    """

    @declared_attr
    def deleted_at(cls) -> Mapped[datetime | None]:
        return mapped_column(
            DateTime(timezone=True),
            nullable=True,
            default=None,
        )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def soft_delete(self, when: datetime | None = None) -> None:
        self.deleted_at = when or datetime.now(timezone.utc)

    def restore(self) -> None:
        self.deleted_at = None


class UUIDMixin:
    """UUID primary key generated client-side."""

    @declared_attr
    def id(cls) -> Mapped[uuid.UUID]:
        return mapped_column(
            primary_key=True,
            default=uuid.uuid4,
        )


def generate_repr(*attrs: str) -> Any:
    """Build a ``__repr__`` showing the given attributes.

    Example:
        __repr__ = generate_repr("id", "name")
    """

    def __repr__(self: Any) -> str:
        fields = ", ".join(f"{attr}={getattr(self, attr)!r}" for attr in attrs)
        return f"{type(self).__name__}({fields})"

    return __repr__
