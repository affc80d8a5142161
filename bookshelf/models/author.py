"""authors table."""

from datetime import date
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Date, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bookshelf.core.database import Base, TimestampMixin

if TYPE_CHECKING:
    from bookshelf.models.book import Book


class Author(TimestampMixin, Base):
    __tablename__ = "authors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Unique index is the storage-level guard behind the validator's early check.
    full_name: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    born_at: Mapped[date] = mapped_column(Date, nullable=False)
    died_at: Mapped[Optional[date]] = mapped_column(Date)
    info: Mapped[str] = mapped_column(Text, nullable=False)
    image_file: Mapped[Optional[str]] = mapped_column(Text)

    books: Mapped[list["Book"]] = relationship(
        back_populates="author",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
