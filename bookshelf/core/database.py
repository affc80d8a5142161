"""Async declarative base and the timestamp mixin every table uses."""

from datetime import datetime

from sqlalchemy import DateTime, MetaData, func
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Deterministic constraint names, so unique-violation messages and
# migrations refer to e.g. uq_authors_full_name on every backend
NAMING_CONVENTION = {
    "pk": "pk_%(table_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ix": "ix_%(column_0_label)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
}


class Base(AsyncAttrs, DeclarativeBase):
    """Declarative base for the bookshelf tables."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)


def _timestamp(**kwargs) -> Mapped[datetime]:
    return mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, **kwargs
    )


class TimestampMixin:
    """``created_at`` / ``updated_at``; the ORM bumps ``updated_at`` on UPDATE."""

    created_at: Mapped[datetime] = _timestamp()
    updated_at: Mapped[datetime] = _timestamp(onupdate=func.now())
